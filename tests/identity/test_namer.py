"""Tests for label assignment."""

import random
import re

import pytest

from roomlog.identity.namer import GERMAN_NAMES, LabelPool


class TestLabelPool:
    """Test LabelPool."""

    def test_pool_size(self):
        """Test the default pool holds 50 distinct names."""
        assert len(GERMAN_NAMES) == 50
        assert len(set(GERMAN_NAMES)) == 50
        assert LabelPool().size == 50

    def test_empty_pool_rejected(self):
        """Test a pool needs at least one name."""
        with pytest.raises(ValueError):
            LabelPool(names=[])

    @pytest.mark.asyncio
    async def test_assign_unique(self):
        """Test two assignments differ and are marked used."""
        pool = LabelPool()

        first = await pool.assign()
        second = await pool.assign()

        assert first != second
        assert pool.is_used(first)
        assert pool.is_used(second)
        assert first in GERMAN_NAMES

    @pytest.mark.asyncio
    async def test_exhaustion_adds_suffix(self):
        """Test 60 assignments from 50 names are all distinct."""
        pool = LabelPool()

        labels = [await pool.assign() for _ in range(60)]

        assert len(set(labels)) == 60
        assert set(labels[:50]) == set(GERMAN_NAMES)
        for label in labels[50:]:
            assert re.fullmatch(r"\D+\d+", label)
            assert label not in GERMAN_NAMES

    @pytest.mark.asyncio
    async def test_suffix_cycles_through_pool(self):
        """Test suffixed labels walk the pool, then bump the suffix."""
        pool = LabelPool(names=["A", "B"])

        labels = [await pool.assign() for _ in range(6)]

        assert sorted(labels[:2]) == ["A", "B"]
        assert labels[2:] == ["A1", "B1", "A2", "B2"]

    @pytest.mark.asyncio
    async def test_suffix_skips_claimed_labels(self):
        """Test a suffixed label claimed elsewhere is not reused."""
        pool = LabelPool(names=["A", "B"])
        for label in ["A", "B", "A1"]:
            await pool.register_used(label)

        assert await pool.assign() == "B1"
        assert await pool.assign() == "A2"

    @pytest.mark.asyncio
    async def test_registered_label_not_assigned(self):
        """Test labels claimed by others are skipped."""
        pool = LabelPool(names=["A", "B"])
        await pool.register_used("A")

        assert await pool.assign() == "B"

    @pytest.mark.asyncio
    async def test_release(self):
        """Test a released label becomes available again."""
        pool = LabelPool(names=["A"])
        label = await pool.assign()

        await pool.release(label)

        assert not pool.is_used(label)
        assert await pool.assign() == "A"

    @pytest.mark.asyncio
    async def test_random_selection(self):
        """Test first picks vary between pools."""
        firsts = set()
        for seed in range(20):
            pool = LabelPool(rng=random.Random(seed))
            firsts.add(await pool.assign())

        assert len(firsts) > 1

    @pytest.mark.asyncio
    async def test_used_labels(self):
        """Test used_labels lists assigned and registered labels."""
        pool = LabelPool()
        first = await pool.assign()
        await pool.register_used("External")

        assert sorted(pool.used_labels()) == sorted([first, "External"])
