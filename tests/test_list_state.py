"""Tests for the client-side list engine."""

import random

import pytest

from waterdesk.errors import DuplicateRecordError, RecordNotFoundError
from waterdesk.list_state import (
    ALL,
    ASC,
    DESC,
    ListSpec,
    ListStateEngine,
    MutationKind,
    SortKey,
    compute_view,
    get_path,
    matches,
    sort_records,
)
from waterdesk.resources import get_resource

SPEC = ListSpec(
    id_field="id",
    search_fields=("name", "email", "owner.Name"),
    filter_field="status",
    filter_options=("Active", "Inactive"),
    sort_keys={
        "name": SortKey("name", label="Name"),
        "joined": SortKey("joined", kind="date", label="Joined"),
        "amount": SortKey("amount", kind="number", label="Amount"),
    },
    default_sort="name",
    page_size=5,
)


def make_records(count=23, seed=7):
    rng = random.Random(seed)
    records = []
    for i in range(count):
        records.append(
            {
                "id": f"R{i:03d}",
                "name": rng.choice(["alpha", "Bravo", "charlie", "delta"]) + f" {i % 4}",
                "email": f"person{i}@example.com",
                "status": "Active" if i % 3 else "Inactive",
                "joined": f"2024-{(i % 12) + 1:02d}-{(i % 27) + 1:02d}",
                "amount": rng.choice([10, 20, 30]),
                "owner": {"_id": f"U{i}", "Name": f"Owner {i}"},
            }
        )
    return records


@pytest.fixture
def engine():
    return ListStateEngine(SPEC, make_records())


class TestFiltering:
    @pytest.mark.parametrize("term", ["", "alpha", "BRAVO", "person1", "owner 2", "zzz"])
    @pytest.mark.parametrize("status", [ALL, "Active", "Inactive"])
    def test_page_items_match_and_count_is_exact(self, engine, term, status):
        engine.set_search(term)
        engine.set_filter(status)
        view = engine.view()

        expected = [r for r in engine.items if matches(r, term, status, SPEC)]
        assert view.total_filtered == len(expected)
        for record in view.page_items:
            assert matches(record, term, status, SPEC)
            if status != ALL:
                assert record["status"] == status

    def test_search_is_case_insensitive_substring(self):
        records = [{"id": 1, "name": "Main Reservoir", "status": "Active"}]
        spec = ListSpec(id_field="id", search_fields=("name",), sort_keys={"n": SortKey("name")}, default_sort="n")
        assert matches(records[0], "RESERV", ALL, spec)
        assert not matches(records[0], "well", ALL, spec)

    def test_nested_reference_is_searched_by_dotted_path(self, engine):
        engine.set_search("Owner 17")
        assert [r["id"] for r in engine.filtered()] == ["R017"]

    def test_filter_never_mutates_collection(self, engine):
        before = [dict(r) for r in engine.items]
        engine.set_search("alpha")
        engine.set_filter("Active")
        engine.view()
        assert engine.items == before

    def test_get_path_stops_at_non_mappings(self):
        record = {"a": {"b": {"c": 5}}, "x": "flat"}
        assert get_path(record, "a.b.c") == 5
        assert get_path(record, "x.y") is None
        assert get_path(record, "missing.path") is None


class TestPagination:
    @pytest.mark.parametrize("page_size", [1, 4, 5, 12, 50])
    def test_pages_cover_filtered_exactly_once(self, page_size):
        engine = ListStateEngine(SPEC, make_records(), page_size=page_size)
        engine.set_filter("Active")
        total_pages = engine.view().total_pages

        seen = []
        for page in range(1, total_pages + 1):
            engine.set_page(page)
            seen.extend(r["id"] for r in engine.view().page_items)

        assert seen == [r["id"] for r in engine.filtered()]
        assert len(seen) == len(set(seen))

    def test_compute_view_reports_totals(self):
        view = compute_view(make_records(23), "", ALL, "name", ASC, 5, 5, spec=SPEC)
        assert view.total_filtered == 23
        assert view.total_pages == 5
        assert len(view.page_items) == 3

    def test_empty_collection_has_zero_pages_and_page_one(self):
        engine = ListStateEngine(SPEC, [])
        view = engine.view()
        assert view == ([], 0, 0)
        assert engine.page == 1

    def test_page_clamps_after_filter_shrinks_results(self, engine):
        engine.set_page(5)
        assert engine.page == 5
        engine.search_term = "R000"  # bypass the setter's reset to page 1
        engine.view()
        assert engine.page == 1

    def test_set_page_beyond_last_is_clamped(self, engine):
        engine.set_page(99)
        assert engine.page == engine.view().total_pages

    def test_next_and_prev_stay_in_range(self, engine):
        engine.prev_page()
        assert engine.page == 1
        for _ in range(10):
            engine.next_page()
        assert engine.page == engine.view().total_pages

    def test_search_and_filter_reset_page(self, engine):
        engine.set_page(3)
        engine.set_search("a")
        assert engine.page == 1
        engine.set_page(2)
        engine.set_filter("Active")
        assert engine.page == 1

    def test_deleting_last_page_items_moves_back(self):
        engine = ListStateEngine(SPEC, make_records(6), page_size=5)
        engine.set_page(2)
        (last,) = engine.view().page_items
        engine.delete(last["id"])
        assert engine.page == 1
        assert len(engine.view().page_items) == 5


class TestSorting:
    @pytest.mark.parametrize("key", ["name", "joined", "amount"])
    @pytest.mark.parametrize("direction", [ASC, DESC])
    def test_sorted_values_are_monotonic(self, key, direction):
        records = make_records(40)
        ordered = sort_records(records, key, direction, SPEC)
        values = [SPEC.sort_keys[key].value(r) for r in ordered]
        pairs = list(zip(values, values[1:]))
        if direction == ASC:
            assert all(a <= b for a, b in pairs)
        else:
            assert all(a >= b for a, b in pairs)

    @pytest.mark.parametrize("direction", [ASC, DESC])
    def test_ties_keep_collection_order(self, direction):
        records = make_records(40)
        ordered = sort_records(records, "amount", direction, SPEC)
        for amount in (10, 20, 30):
            tied = [r["id"] for r in ordered if r["amount"] == amount]
            assert tied == [r["id"] for r in records if r["amount"] == amount]

    @pytest.mark.parametrize("direction", [ASC, DESC])
    def test_missing_and_unparseable_values_sort_last(self, direction):
        records = [
            {"id": 1, "joined": "2024-03-01"},
            {"id": 2, "joined": None},
            {"id": 3, "joined": "not a date"},
            {"id": 4, "joined": "2023-01-01"},
        ]
        ordered = [r["id"] for r in sort_records(records, "joined", direction, SPEC)]
        assert ordered[2:] == [2, 3]

    def test_text_sort_ignores_case(self):
        records = [{"id": 1, "name": "beta"}, {"id": 2, "name": "Alpha"}]
        assert [r["id"] for r in sort_records(records, "name", ASC, SPEC)] == [2, 1]

    def test_same_key_toggles_direction(self, engine):
        assert (engine.sort_key, engine.sort_direction) == ("name", ASC)
        engine.set_sort("name")
        assert engine.sort_direction == DESC
        engine.set_sort("name")
        assert engine.sort_direction == ASC

    def test_new_key_starts_ascending(self, engine):
        engine.set_sort("name")
        engine.set_sort("amount")
        assert (engine.sort_key, engine.sort_direction) == ("amount", ASC)

    def test_explicit_unchanged_sort_keeps_page(self, engine):
        engine.set_page(3)
        engine.set_sort("name", ASC)
        assert engine.page == 3

    def test_unknown_sort_key_is_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.set_sort("nope")
        with pytest.raises(ValueError):
            sort_records(engine.items, "nope", ASC, SPEC)

    def test_spec_rejects_unknown_default_sort(self):
        with pytest.raises(ValueError):
            ListSpec(id_field="id", search_fields=(), sort_keys={}, default_sort="name")


class TestSelection:
    def test_selection_stays_subset_after_mutations(self, engine):
        for rid in ["R001", "R002", "R003", "R004"]:
            engine.toggle_select(rid)
        engine.delete("R002")
        engine.bulk_delete(["R003"])
        engine.replace_items([r for r in engine.items if r["id"] != "R004"])

        assert engine.selected_ids == {"R001"}
        assert engine.selected_ids <= set(engine.ids())

    def test_toggle_unknown_id_is_ignored(self, engine):
        engine.toggle_select("ghost")
        assert engine.selected_ids == set()

    def test_toggle_twice_unselects(self, engine):
        engine.toggle_select("R005")
        engine.toggle_select("R005")
        assert engine.selected_ids == set()

    def test_select_all_visible_selects_then_clears_page(self, engine):
        page = engine.view().page_items
        engine.toggle_select_all_visible(page)
        assert engine.selected_ids == {r["id"] for r in page}

        engine.toggle_select_all_visible(page)
        assert engine.selected_ids == set()

    def test_select_all_visible_completes_partial_page(self, engine):
        page = engine.view().page_items
        engine.toggle_select(page[0]["id"])
        engine.toggle_select("R022")
        engine.toggle_select_all_visible(page)
        assert engine.selected_ids == {r["id"] for r in page} | {"R022"}

    def test_selected_records_follow_collection_order(self, engine):
        engine.toggle_select("R010")
        engine.toggle_select("R002")
        assert [r["id"] for r in engine.selected_records()] == ["R002", "R010"]


class TestResetView:
    def test_reset_is_idempotent_and_keeps_selection(self, engine):
        engine.set_search("alpha")
        engine.set_filter("Inactive")
        engine.set_sort("amount", DESC)
        engine.toggle_select("R001")

        engine.reset_view()
        first = (engine.search_term, engine.categorical_filter, engine.sort_key, engine.sort_direction, engine.page)
        engine.reset_view()
        second = (engine.search_term, engine.categorical_filter, engine.sort_key, engine.sort_direction, engine.page)

        assert first == second == ("", ALL, "name", ASC, 1)
        assert engine.selected_ids == {"R001"}


class TestMutations:
    def test_create_appends_and_is_visible(self, engine):
        engine.create({"id": "NEW", "name": "aardvark", "status": "Active"})
        assert engine.get("NEW")["name"] == "aardvark"
        assert engine.view().page_items[0]["id"] == "NEW"

    def test_create_duplicate_id_raises(self, engine):
        with pytest.raises(DuplicateRecordError):
            engine.create({"id": "R001", "name": "dup"})

    def test_create_without_id_gets_client_id(self):
        engine = ListStateEngine(get_resource("users").list_spec)
        jane = {"Name": "Jane", "Phone": "5551234567", "Email": "jane@x.com", "ConnectionType": "Residential"}

        engine.create(jane)

        view = engine.view()
        assert view.total_pages == 1
        assert len(view.page_items) == 1
        created = view.page_items[0]
        assert created["Name"] == "Jane"
        assert created["UserID"]
        assert engine.get(created["UserID"]) is created

    def test_two_creates_without_ids_stay_distinct(self, engine):
        engine.create({"name": "first"})
        engine.create({"name": "second"})
        assert len(set(engine.ids())) == len(engine.ids())

    def test_update_replaces_in_place(self, engine):
        index = engine.ids().index("R004")
        engine.update("R004", {"name": "renamed", "status": "Active"})
        assert engine.items[index] == {"id": "R004", "name": "renamed", "status": "Active"}

    def test_update_cannot_take_another_records_id(self, engine):
        with pytest.raises(DuplicateRecordError):
            engine.update("R001", {"id": "R002", "name": "clash"})
        assert engine.ids().count("R002") == 1
        assert engine.get("R001")["id"] == "R001"

    def test_update_may_rename_to_a_free_id(self, engine):
        engine.toggle_select("R001")
        engine.update("R001", {"id": "R900", "name": "moved"})
        assert engine.get("R001") is None
        assert engine.get("R900")["name"] == "moved"
        assert "R001" not in engine.selected_ids

    def test_update_missing_raises(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.update("ghost", {"name": "x"})

    def test_delete_missing_is_a_no_op(self, engine):
        before = engine.ids()
        engine.delete("ghost")
        assert engine.ids() == before

    def test_replace_items_rejects_duplicate_ids(self, engine):
        with pytest.raises(DuplicateRecordError):
            engine.replace_items([{"id": 1}, {"id": 1}])

    def test_apply_mutation_accepts_plain_kind_names(self, engine):
        engine.apply_mutation("bulk_delete", {"ids": ["R000", "R001"]})
        engine.apply_mutation(MutationKind.DELETE, {"id": "R002"})
        assert not {"R000", "R001", "R002"} & set(engine.ids())

    def test_view_recomputes_after_mutation(self, engine):
        first = engine.view()
        engine.delete(first.page_items[0]["id"])
        assert engine.view().total_filtered == first.total_filtered - 1
