"""
Tests for accessibility node filtering and the serializer pass that applies it.
"""

import pytest

from browser_control.dom.accessibility.filter import FilteringStats, ax_value, is_interesting, property_map
from browser_control.dom.serializer import AXTreeSerializer, escape_token, find_root
from tests.ci.conftest import ax_node


def _sequential_uids():
    counter = iter(range(1, 1000))
    return lambda node: f'1_{next(counter)}'


class TestIsInteresting:
    def test_named_control_is_interesting(self):
        assert is_interesting(ax_node('b', 'button', 'Save'))

    def test_unnamed_control_is_still_interesting(self):
        assert is_interesting(ax_node('b', 'button'))

    def test_ignored_node_is_never_interesting(self):
        assert not is_interesting(ax_node('b', 'button', 'Save', ignored=True))

    def test_structural_roles_need_a_name(self):
        assert not is_interesting(ax_node('g', 'generic'))
        assert not is_interesting(ax_node('g', 'none', '   '))
        assert is_interesting(ax_node('g', 'generic', 'Cart summary'))


class TestPropertyHelpers:
    def test_ax_value_unwraps(self):
        assert ax_value({'type': 'string', 'value': 'x'}) == 'x'
        assert ax_value(None) is None
        assert ax_value({}) is None

    def test_property_map_flattens_values(self):
        node = ax_node('c', 'checkbox', 'Remember me', properties={'checked': True, 'disabled': False})

        assert property_map(node) == {'checked': True, 'disabled': False}

    def test_property_map_without_properties(self):
        assert property_map(ax_node('c', 'checkbox')) == {}


class TestFilteringStats:
    def test_compression_ratio(self):
        stats = FilteringStats(total_nodes=10, printed_nodes=4)
        assert stats.compression_ratio == pytest.approx(0.6)

    def test_empty_ratio(self):
        assert FilteringStats().compression_ratio == 0.0


class TestSerializerPass:
    def test_pruned_container_promotes_children(self):
        nodes = [
            ax_node('root', 'RootWebArea', 'Shop', ['wrap'], backend_id=1),
            ax_node('wrap', 'generic', children=['inner'], backend_id=2),
            ax_node('inner', 'generic', children=['btn'], backend_id=3),
            ax_node('btn', 'button', 'Buy', backend_id=4),
        ]
        serializer = AXTreeSerializer(nodes, _sequential_uids())

        text = serializer.serialize()

        assert text == 'uid=1_1 RootWebArea Shop\n  uid=1_2 button Buy\n'
        assert serializer.stats.total_nodes == 4
        assert serializer.stats.printed_nodes == 2
        assert serializer.stats.pruned_nodes == 2

    def test_verbose_counts_ignored_nodes(self):
        nodes = [
            ax_node('root', 'RootWebArea', 'Shop', ['hidden'], backend_id=1),
            ax_node('hidden', 'button', 'Secret', backend_id=2, ignored=True),
        ]
        serializer = AXTreeSerializer(nodes, _sequential_uids(), verbose=True)

        serializer.serialize()

        assert serializer.stats.ignored_nodes == 1
        assert serializer.stats.pruned_nodes == 0

    def test_unknown_child_ids_are_skipped(self):
        nodes = [ax_node('root', 'RootWebArea', 'Shop', ['missing'], backend_id=1)]

        assert AXTreeSerializer(nodes, _sequential_uids()).serialize() == 'uid=1_1 RootWebArea Shop\n'

    def test_find_root_skips_children(self):
        nodes = [ax_node('child', 'button', 'Go'), ax_node('root', 'RootWebArea', 'Page', ['child'])]

        assert find_root(nodes)['nodeId'] == 'root'
        assert find_root([]) is None


class TestEscapeToken:
    def test_safe_tokens_are_bare(self):
        assert escape_token('Submit_2-b') == 'Submit_2-b'

    def test_other_tokens_are_quoted(self):
        assert escape_token('Sign in') == '"Sign in"'
        assert escape_token('say "hi"\nnow') == '"say \\"hi\\"\\nnow"'
