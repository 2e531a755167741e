"""Tests for policy/merge.py - deep merge of overrides onto defaults.

Tests verify:
1. Override wins on every key path it sets
2. Base survives on every key path the override omits
3. Lists are replaced, not concatenated
4. Idempotence and input immutability
5. Merge never validates (odd input still merges)
"""

import copy
import random

import pytest

from policy.merge import merge
from policy.schema import DEFAULT_POLICY, default_policy


def _leaf_paths(value, prefix=()):
    """Yield (path, leaf) for every non-mapping value."""
    if isinstance(value, dict) and value:
        for key, child in value.items():
            yield from _leaf_paths(child, prefix + (key,))
    else:
        yield prefix, value


def _get(value, path):
    for key in path:
        value = value[key]
    return value


def _has_path(value, path):
    for key in path:
        if not isinstance(value, dict) or key not in value:
            return False
        value = value[key]
    return True


def _random_tree(rng, depth=0):
    """Generate a random nested mapping over a small key space."""
    tree = {}
    for key in rng.sample(['a', 'b', 'c', 'd'], rng.randint(0, 3)):
        roll = rng.random()
        if roll < 0.4 and depth < 3:
            tree[key] = _random_tree(rng, depth + 1)
        elif roll < 0.6:
            tree[key] = [rng.choice(['GET', 'POST', 'PUT']) for _ in range(rng.randint(0, 3))]
        elif roll < 0.8:
            tree[key] = rng.choice(['defaults', 'x', 'y'])
        else:
            tree[key] = rng.choice([True, False, None, 1])
    return tree


SEEDS = list(range(40))


class TestMergeBasics:
    """Test merge() on concrete policies."""

    def test_empty_override_returns_base(self):
        """Empty override yields a copy of the base."""
        assert merge(DEFAULT_POLICY, {}) == DEFAULT_POLICY

    def test_none_override_returns_base(self):
        """None override means no override."""
        assert merge(DEFAULT_POLICY, None) == DEFAULT_POLICY

    def test_nested_override(self):
        """Nested keys merge without dropping siblings."""
        result = merge(DEFAULT_POLICY, {'methods': {'file': {'enabled': True}}})

        assert result['methods']['file']['enabled'] is True
        assert result['methods']['file']['user_file'] == ''
        assert result['methods']['ldap'] == DEFAULT_POLICY['methods']['ldap']

    def test_list_replaced_wholesale(self):
        """Operation lists are replaced, never concatenated."""
        result = merge(DEFAULT_POLICY, {'limits': {'defaults': ['GET']}})
        assert result['limits']['defaults'] == ['GET']

    def test_principal_value_replaced(self):
        """A principal's "defaults" token can be replaced by an explicit list."""
        result = merge(DEFAULT_POLICY, {'limits': {'hosts': {'127.0.0.1': ['GET', 'HEAD']}}})
        assert result['limits']['hosts'] == {'127.0.0.1': ['GET', 'HEAD']}

    def test_principals_added_alongside_defaults(self):
        """Override principals are added next to the default host."""
        result = merge(DEFAULT_POLICY, {'limits': {'hosts': {'10.0.0.0/8': 'defaults'}}})
        assert result['limits']['hosts'] == {'127.0.0.1': 'defaults', '10.0.0.0/8': 'defaults'}

    def test_inputs_not_mutated(self):
        """Neither base nor override changes."""
        base = default_policy()
        override = {'limits': {'users': {'alice': ['GET']}}}
        base_before = copy.deepcopy(base)
        override_before = copy.deepcopy(override)

        result = merge(base, override)
        result['limits']['users']['alice'].append('POST')
        result['limits']['defaults'].append('DELETE')

        assert base == base_before
        assert override == override_before

    def test_invalid_input_still_merges(self):
        """Merge does not validate: unknown kinds and bad types pass through."""
        result = merge(DEFAULT_POLICY, {'methods': {'kerberos': {'enabled': 'yes'}}, 'limits': 7})

        assert result['methods']['kerberos'] == {'enabled': 'yes'}
        assert result['limits'] == 7

    def test_mapping_replaces_scalar(self):
        """A mapping in the override replaces a scalar in the base."""
        assert merge({'a': 1}, {'a': {'b': 2}}) == {'a': {'b': 2}}

    def test_non_mapping_override_replaces_base(self):
        assert merge({'a': 1}, ['x']) == ['x']


class TestMergeProperties:
    """Merge properties over randomly generated nested mappings."""

    @pytest.mark.parametrize("seed", SEEDS)
    def test_override_precedence(self, seed):
        """merge(B, O) equals O on every leaf path present in O."""
        rng = random.Random(seed)
        base, override = _random_tree(rng), _random_tree(rng)
        result = merge(base, override)

        for path, leaf in _leaf_paths(override):
            if not path:
                continue
            if leaf == {}:
                # Empty mapping merges onto whatever mapping was there
                assert isinstance(_get(result, path), dict)
            else:
                assert _get(result, path) == leaf

    @pytest.mark.parametrize("seed", SEEDS)
    def test_base_preserved_on_absent_paths(self, seed):
        """merge(B, O) equals B on every leaf path absent from O."""
        rng = random.Random(seed)
        base, override = _random_tree(rng), _random_tree(rng)
        result = merge(base, override)

        for path, leaf in _leaf_paths(base):
            if not path:
                continue
            # Skip paths the override sets or cuts off with a non-mapping value
            if _has_path(override, path):
                continue
            if any(
                _has_path(override, path[:i]) and not isinstance(_get(override, path[:i]), dict)
                for i in range(1, len(path))
            ):
                continue
            assert _get(result, path) == leaf

    @pytest.mark.parametrize("seed", SEEDS)
    def test_idempotent(self, seed):
        """merge(merge(B, O), O) == merge(B, O)."""
        rng = random.Random(seed)
        base, override = _random_tree(rng), _random_tree(rng)
        once = merge(base, override)
        assert merge(once, override) == once
