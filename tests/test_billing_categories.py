"""
Tests for billing category rules (flags, display helpers, defaults, reordering)
"""
import random
import pytest
from services.billing_categories import (
    FLAG_CONFLICT_MESSAGE,
    LEGACY_EXTRA_CHARGES_NAME,
    validate_category_flags,
    is_default_category,
    get_billing_category_display_name,
    should_show_in_work_order_section,
    should_show_in_extra_charges_dropdown,
    group_billing_categories,
    get_category_badge_info,
    compute_missing_defaults,
    move_item,
    reorder_categories,
    reorder_line_items,
    sort_categories
)
from services.billing_errors import NotFoundError


def _categories(*names):
    return [{'id': name.lower(), 'name': name, 'sort_order': i + 1} for i, name in enumerate(names)]


@pytest.mark.unit
class TestFlagValidation:
    """Tests for extra charge / work order exclusivity"""

    @pytest.mark.parametrize('is_extra_charge,include_in_work_order,expect_error', [
        (False, False, False),
        (True, False, False),
        (False, True, False),
        (True, True, True),
    ])
    def test_error_only_when_both_flags_set(self, is_extra_charge, include_in_work_order, expect_error):
        """Test an error is returned iff both flags are true"""
        error = validate_category_flags(is_extra_charge, include_in_work_order)
        assert (error is not None) is expect_error

    def test_error_message_is_human_readable(self):
        """Test the conflict message tells the user to pick one"""
        assert validate_category_flags(True, True) == FLAG_CONFLICT_MESSAGE
        assert 'choose one' in FLAG_CONFLICT_MESSAGE


@pytest.mark.unit
class TestDisplayHelpers:
    """Tests for display names, badges and grouping"""

    def test_is_default_category_is_case_insensitive(self):
        """Test default name matching ignores case and whitespace"""
        assert is_default_category('labor')
        assert is_default_category('  PAINT ')
        assert not is_default_category('Carpet')

    def test_is_default_category_uses_given_names(self):
        """Test explicit default names replace the fallback list"""
        assert is_default_category('regular paint', ['Regular Paint'])
        assert not is_default_category('Labor', ['Regular Paint'])

    def test_display_name_for_archived(self):
        """Test archived categories are suffixed"""
        category = {'name': 'Trim', 'archived_at': '2026-01-01T00:00:00', 'is_extra_charge': True}
        assert get_billing_category_display_name(category) == 'Trim (Archived)'

    def test_display_name_for_extra_charge(self):
        """Test extra charges are prefixed"""
        category = {'name': 'Trash Removal', 'is_extra_charge': True}
        assert get_billing_category_display_name(category) == 'Extra Charges - Trash Removal'

    def test_display_name_plain(self):
        """Test regular categories keep their name"""
        assert get_billing_category_display_name({'name': 'Regular Paint'}) == 'Regular Paint'

    def test_work_order_section_visibility(self):
        """Test only non-archived work order categories show in the work order"""
        assert should_show_in_work_order_section({'include_in_work_order': True, 'is_extra_charge': False})
        assert not should_show_in_work_order_section({'include_in_work_order': True, 'is_extra_charge': True})
        assert not should_show_in_work_order_section(
            {'include_in_work_order': True, 'archived_at': '2026-01-01T00:00:00'}
        )
        assert not should_show_in_work_order_section({'include_in_work_order': False})

    def test_extra_charges_dropdown_visibility(self):
        """Test only non-archived extra charges show in the dropdown"""
        assert should_show_in_extra_charges_dropdown({'is_extra_charge': True})
        assert not should_show_in_extra_charges_dropdown(
            {'is_extra_charge': True, 'archived_at': '2026-01-01T00:00:00'}
        )
        assert not should_show_in_extra_charges_dropdown({'is_extra_charge': False})

    def test_group_billing_categories(self):
        """Test categories are split into active, extra charges and archived"""
        active = {'id': 'a', 'name': 'Paint'}
        extra = {'id': 'e', 'name': 'Haul Away', 'is_extra_charge': True}
        archived = {'id': 'x', 'name': 'Old', 'archived_at': '2026-01-01T00:00:00'}

        groups = group_billing_categories([active, extra, archived])

        assert groups['active'] == [active]
        assert groups['extra_charges'] == [extra]
        assert groups['archived'] == [archived]

    def test_badge_info(self):
        """Test badge precedence: archived, extra charge, system default"""
        assert get_category_badge_info({'name': 'Labor', 'archived_at': 'x'})['text'] == 'Archived'
        assert get_category_badge_info({'name': 'Labor', 'is_extra_charge': True})['text'] == 'Extra Charge'
        assert get_category_badge_info({'name': 'Labor'})['variant'] == 'default'
        assert get_category_badge_info({'name': 'Carpet'}) is None


@pytest.mark.unit
class TestComputeMissingDefaults:
    """Tests for default category provisioning"""

    def test_stages_only_missing_defaults(self):
        """Test defaults [Labor, Materials] with [Labor] stages only Materials"""
        global_defaults = [
            {'name': 'Labor', 'sort_order': 1, 'is_default': True},
            {'name': 'Materials', 'sort_order': 2, 'is_default': True},
        ]
        staged = compute_missing_defaults('prop-1', global_defaults, [{'name': 'Labor'}])

        assert [s['name'] for s in staged] == ['Materials']
        assert staged[0]['property_id'] == 'prop-1'
        assert staged[0]['sort_order'] == 2
        assert staged[0]['include_in_work_order'] is True
        assert staged[0]['is_extra_charge'] is False

    def test_running_twice_never_duplicates(self):
        """Test staged rows merged back stop the category being staged again"""
        global_defaults = [
            {'name': 'Labor', 'sort_order': 1, 'is_default': True},
            {'name': 'Materials', 'sort_order': 2, 'is_default': True},
        ]
        current = [{'name': 'Labor'}]
        first = compute_missing_defaults('prop-1', global_defaults, current)
        second = compute_missing_defaults('prop-1', global_defaults, current + first)

        assert len(first) == 1
        assert second == []

    def test_name_match_is_case_insensitive(self):
        """Test 'materials' already present blocks 'Materials'"""
        staged = compute_missing_defaults(
            'prop-1', [{'name': 'Materials', 'is_default': True}], [{'name': ' materials '}]
        )
        assert staged == []

    def test_ignores_non_default_and_hidden(self):
        """Test only visible is_default master rows are provisioned"""
        global_defaults = [
            {'name': 'Labor', 'is_default': False},
            {'name': 'Paint', 'is_default': True, 'is_hidden': True},
        ]
        assert compute_missing_defaults('prop-1', global_defaults, []) == []

    def test_legacy_extra_charges_staged_when_enabled(self):
        """Test the legacy Extra Charges category is staged as an extra charge"""
        staged = compute_missing_defaults('prop-1', [], [], include_legacy_extra_charges=True)

        assert len(staged) == 1
        assert staged[0]['name'] == LEGACY_EXTRA_CHARGES_NAME
        assert staged[0]['is_extra_charge'] is True
        assert staged[0]['include_in_work_order'] is False
        assert staged[0]['sort_order'] == 4


@pytest.mark.unit
class TestReordering:
    """Tests for drag-and-drop reordering"""

    def test_move_down_takes_target_position(self):
        """Test moving A onto C yields B, C, A"""
        result = move_item(_categories('A', 'B', 'C'), 'a', 'c')
        assert [c['name'] for c in result] == ['B', 'C', 'A']

    def test_move_up_takes_target_position(self):
        """Test moving C onto A yields C, A, B"""
        result = move_item(_categories('A', 'B', 'C'), 'c', 'a')
        assert [c['name'] for c in result] == ['C', 'A', 'B']

    def test_move_onto_self_is_noop(self):
        """Test dropping an item on itself keeps the order"""
        result = move_item(_categories('A', 'B'), 'a', 'a')
        assert [c['name'] for c in result] == ['A', 'B']

    def test_input_not_mutated(self):
        """Test the original list is untouched"""
        original = _categories('A', 'B', 'C')
        reorder_categories(original, 'a', 'c')
        assert [c['name'] for c in original] == ['A', 'B', 'C']
        assert [c['sort_order'] for c in original] == [1, 2, 3]

    def test_unknown_id_raises_not_found(self):
        """Test moving an unknown id raises NotFoundError"""
        with pytest.raises(NotFoundError):
            move_item(_categories('A', 'B'), 'zzz', 'a')
        with pytest.raises(NotFoundError):
            move_item(_categories('A', 'B'), 'a', 'zzz')

    def test_sort_orders_stay_contiguous(self):
        """Test any sequence of moves leaves sort_order exactly 1..N"""
        rng = random.Random(7)
        categories = [dict(c, sort_order=c['sort_order'] * 10) for c in _categories(*'ABCDEFG')]
        for _ in range(50):
            moved, target = rng.choice(categories)['id'], rng.choice(categories)['id']
            categories = reorder_categories(categories, moved, target)
            assert sorted(c['sort_order'] for c in categories) == list(range(1, 8))
            assert [c['sort_order'] for c in categories] == list(range(1, 8))

    def test_reorder_line_items_uses_same_semantics(self):
        """Test line items are renumbered the same way"""
        items = [{'id': 'x'}, {'id': 'y'}, {'id': 'z'}]
        result = reorder_line_items(items, 'z', 'x')
        assert [(i['id'], i['sort_order']) for i in result] == [('z', 1), ('x', 2), ('y', 3)]

    def test_sort_categories_by_order_then_name(self):
        """Test ties on sort_order fall back to name"""
        categories = [
            {'name': 'b', 'sort_order': 1},
            {'name': 'a', 'sort_order': 1},
            {'name': 'c', 'sort_order': 0},
        ]
        assert [c['name'] for c in sort_categories(categories)] == ['c', 'a', 'b']
