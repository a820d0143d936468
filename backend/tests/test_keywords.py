from moodtrip.services.keywords import KeywordSet, normalize_keyword


def test_normalization_trims_and_casefolds():
    assert normalize_keyword("  Nature ") == "nature"
    assert normalize_keyword("自然 ") == "自然"


def test_duplicates_collapse_after_normalization():
    keywords = KeywordSet()
    keywords.add("自然")
    keywords.add("自然 ")
    keywords.add("自然")

    assert len(keywords) == 1
    assert keywords.to_list() == ["自然"]


def test_insertion_order_is_kept():
    keywords = KeywordSet(["宁静", "自然", "宁静", "水边"])

    assert keywords.to_list() == ["宁静", "自然", "水边"]


def test_blank_and_none_are_dropped():
    keywords = KeywordSet(["", "   ", None, "Lake"])

    assert keywords.to_list() == ["lake"]
    assert "LAKE " in keywords


def test_add_reports_new_members():
    keywords = KeywordSet(["山地"])

    assert keywords.add("海边") is True
    assert keywords.add(" 海边") is False


def test_union_does_not_modify_original():
    base = KeywordSet(["宁静"])

    merged = base.union(["自然", "宁静"])

    assert base.to_list() == ["宁静"]
    assert merged.to_list() == ["宁静", "自然"]
    assert merged == KeywordSet(["宁静", "自然"])
