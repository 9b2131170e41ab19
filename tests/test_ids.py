"""IdAllocator：编号不与目标包已有编号或本次已分配编号冲突。"""

import pytest

from checkup_report.pptx_injector.ids import MAX_SLIDE_ID, MIN_MASTER_ID, IdAllocator
from checkup_report.pptx_injector.package import OoxmlPackage

PRESENTATION = (
    '<p:presentation xmlns:p="p" xmlns:r="r">'
    '<p:sldMasterIdLst><p:sldMasterId id="2147483648" r:id="rId1"/></p:sldMasterIdLst>'
    "<p:sldIdLst>{slides}</p:sldIdLst>"
    '<p:sldSz cx="12192000" cy="6858000"/></p:presentation>'
)
MASTER = (
    '<p:sldMaster xmlns:p="p" xmlns:r="r"><p:sldLayoutIdLst>'
    '<p:sldLayoutId id="2147483649" r:id="rId1"/><p:sldLayoutId r:id="rId2" id=\'2147483650\'/>'
    "</p:sldLayoutIdLst></p:sldMaster>"
)
RELS = "<Relationships><Relationship Id='rId1'/><Relationship Id=\"rId5\"/></Relationships>"


def slide_entries(*ids: int) -> str:
    return "".join(f'<p:sldId id="{n}" r:id="rId{i + 10}"/>' for i, n in enumerate(ids))


def allocator(slide_ids=(), parts=None) -> IdAllocator:
    package = OoxmlPackage({"ppt/slideMasters/slideMaster1.xml": MASTER, **(parts or {})})
    return IdAllocator(package, PRESENTATION.format(slides=slide_entries(*slide_ids)), RELS)


def test_slide_ids_start_above_256():
    ids = allocator()
    first, second = ids.next_slide_id(), ids.next_slide_id()
    assert first == 257
    assert second == 258


def test_slide_ids_skip_existing():
    ids = allocator(slide_ids=(256, 300, 301))
    assert ids.next_slide_id() == 302
    assert ids.next_slide_id() == 303


def test_slide_ids_search_gap_after_maximum():
    ids = allocator(slide_ids=(257, MAX_SLIDE_ID))
    assert ids.next_slide_id() == 258
    assert ids.next_slide_id() == 259


def test_slide_ids_exhausted(monkeypatch):
    ids = allocator(slide_ids=(MAX_SLIDE_ID,))
    ids.slide_ids = set(range(257, 300)) | {MAX_SLIDE_ID}
    monkeypatch.setattr("checkup_report.pptx_injector.ids.MAX_SLIDE_ID", 299)
    ids._next_slide_id = 300
    with pytest.raises(OverflowError):
        ids.next_slide_id()


def test_rel_ids_follow_existing_maximum():
    ids = allocator()
    assert ids.next_rel_id() == 6
    assert ids.next_rel_id() == 7
    ids.rel_ids.add(8)
    assert ids.next_rel_id() == 9


def test_master_and_layout_ids_share_one_space():
    ids = allocator()
    assert ids.next_master_id() == 2147483651
    assert ids.next_layout_id() == 2147483652
    assert ids.next_master_id() == 2147483653


def test_master_ids_never_below_minimum():
    package = OoxmlPackage({})
    ids = IdAllocator(package, "<p:presentation/>", "<Relationships/>")
    assert ids.next_master_id() == MIN_MASTER_ID


def test_file_numbers_skip_existing_paths():
    ids = allocator(parts={
        "ppt/slides/slide1.xml": "",
        "ppt/slides/slide3.xml": "",
        "ppt/slideLayouts/slideLayout11.xml": "",
        "ppt/theme/theme1.xml": "",
    })
    assert ids.next_slide_number() == 4
    assert ids.next_slide_number() == 5
    assert ids.next_layout_number() == 12
    assert ids.next_master_number() == 2
    assert ids.next_theme_number() == 2
    assert ids.next_notes_slide_number() == 1
    assert ids.next_notes_master_number() == 1


def test_media_paths_are_fresh():
    ids = allocator(parts={"ppt/media/image3.png": b"", "ppt/media/image_5.jpeg": b""})
    first = ids.new_media_path("image", "PNG")
    second = ids.new_media_path("template_media", ".jpeg")
    assert first == "ppt/media/image_6.png"
    assert second == "ppt/media/template_media_7.jpeg"
