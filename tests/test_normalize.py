from jobdedup.services.normalize import normalize_company, normalize_description, normalize_title


def test_normalize_company_strips_articles_suffixes_and_punctuation() -> None:
    assert normalize_company("The Home Depot, Inc.") == "homedepot"
    assert normalize_company("Acme Inc.") == normalize_company("Acme") == "acme"
    assert normalize_company("AcmeCorp LLC") == "acme"


def test_normalize_company_maps_small_digits_and_ampersand() -> None:
    assert normalize_company("7 Eleven") == "seveneleven"
    assert normalize_company("Barnes & Noble") == "barnesandnoble"
    assert normalize_company("Route 66 Diner") == "route66diner"


def test_normalize_company_keeps_last_word_even_if_suffix() -> None:
    assert normalize_company("Services") == "services"
    assert normalize_company("Group Holdings") == "group"


def test_normalize_title_drops_job_ad_filler() -> None:
    assert normalize_title("Senior Software Engineer - Hiring Now!") == "softwareengineer"
    assert normalize_title("Cook!!") == normalize_title("Cook") == "cook"
    assert normalize_title("Part Time Cashier (Immediate Openings)") == "cashier"


def test_normalize_description_only_cleans_punctuation_and_whitespace() -> None:
    assert normalize_description("  Hello,   World!!\n\tApply today ") == "hello world apply today"


def test_normalizers_return_empty_for_missing_input() -> None:
    assert normalize_company(None) == ""
    assert normalize_title("") == ""
    assert normalize_description(None) == ""
