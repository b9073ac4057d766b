from cdi_dews.regions import (REGION_WOREDAS, WOREDA_COORDS, bounds_for, center_of, is_region,
                              region_label, region_of_woreda, region_options, woredas_for)
from cdi_dews.visibility import (allowed_regions, allowed_woredas, can_select_woreda,
                                 compare_targets, ensure_woreda)


# ---------------- Catalog ----------------
def test_catalog_lookups():
    assert woredas_for("afar") == ["Elidar", "Bidu", "Kori"]
    assert woredas_for("somali") == ["Gode", "Fik", "Hargele"]
    assert bounds_for("afar") == [[8.8, 39.2], [14.6, 42.9]]
    assert region_label("somali") == "Somali"
    assert region_of_woreda("Fik") == "somali"
    assert region_of_woreda("Nowhere") is None
    assert is_region("afar") and not is_region("oromia")


def test_woredas_for_returns_a_copy():
    woredas_for("afar").append("Extra")
    assert REGION_WOREDAS["afar"] == ["Elidar", "Bidu", "Kori"]


def test_center_and_options():
    assert center_of([[0.0, 10.0], [2.0, 20.0]]) == {"lat": 1.0, "lon": 15.0}
    assert region_options(["somali"]) == [{"label": "Somali", "value": "somali"}]


# ---------------- Regions ----------------
def test_admin_sees_all_regions(admin):
    assert allowed_regions(admin) == ["afar", "somali"]


def test_officers_see_only_their_region(regional_officer, woreda_officer):
    assert allowed_regions(regional_officer) == ["afar"]
    assert allowed_regions(woreda_officer) == ["somali"]


def test_anonymous_sees_all_regions():
    assert allowed_regions(None) == ["afar", "somali"]


# ---------------- Woredas ----------------
def test_regional_officer_gets_full_unfiltered_list(regional_officer):
    assert allowed_woredas(regional_officer, "afar") == REGION_WOREDAS["afar"]
    assert allowed_woredas(regional_officer, "somali") == REGION_WOREDAS["somali"]


def test_woreda_officer_gets_only_own_woreda(woreda_officer):
    assert allowed_woredas(woreda_officer, "somali") == ["Gode"]
    assert allowed_woredas(woreda_officer, "afar") == []


def test_can_select_woreda(woreda_officer, admin):
    assert can_select_woreda(woreda_officer, "somali", "Gode")
    assert not can_select_woreda(woreda_officer, "somali", "Fik")
    assert can_select_woreda(admin, "somali", "Fik")


# ---------------- ensure_woreda ----------------
def test_woreda_officer_is_pinned_regardless_of_candidate(woreda_officer):
    assert ensure_woreda(woreda_officer, "somali", "Elidar") == "Gode"
    assert ensure_woreda(woreda_officer, "somali", "Fik") == "Gode"
    assert ensure_woreda(woreda_officer, "somali", None) == "Gode"
    assert ensure_woreda(woreda_officer, "afar", "Gode") is None


def test_other_roles_keep_only_in_region_candidates(admin, regional_officer):
    assert ensure_woreda(admin, "afar", "Bidu") == "Bidu"
    assert ensure_woreda(admin, "somali", "Elidar") is None
    assert ensure_woreda(regional_officer, "afar", None) is None


def test_compare_targets_per_role(admin, regional_officer, woreda_officer):
    assert compare_targets(admin) == {"regions": True, "woredas": True, "pick_region": True}
    assert compare_targets(regional_officer) == {"regions": False, "woredas": True, "pick_region": False}
    assert compare_targets(woreda_officer)["woredas"] is False


def test_woreda_coordinates_sit_inside_their_region():
    for region in ["afar", "somali"]:
        (south, west), (north, east) = bounds_for(region)
        for woreda in woredas_for(region):
            lat, lng = WOREDA_COORDS[woreda]
            assert south <= lat <= north and west <= lng <= east, woreda
