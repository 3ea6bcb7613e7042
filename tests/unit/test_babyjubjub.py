"""
Unit tests for BabyJubJub curve arithmetic.

Tests cover:
1. Group law (identity, negation, associativity of scalar multiplication)
2. Subgroup membership and point validation
3. Subgroup order vs field prime in key arithmetic
4. Point serialization
"""

import pytest

from shieldcore.crypto import FIELD_PRIME
from shieldcore.crypto.babyjubjub import (
    BASE8,
    IDENTITY,
    SUBGROUP_ORDER,
    Point,
    derive_public_key,
    is_in_subgroup,
    is_on_curve,
    point_add,
    point_negate,
    scalar_mul,
    validate_point,
)
from shieldcore.core.errors import InvalidPointError


# Full-group generator; BASE8 = 8 * GENERATOR
GENERATOR = Point(
    x=995203441582195749578291179787384436505546430278305826713579947235728471134,
    y=5472060717959818805561601436314318772137091100104008585924551046643952123905,
)


# =============================================================================
# Group Law
# =============================================================================


class TestGroupLaw:
    """Tests for point addition and scalar multiplication."""

    def test_base_points_on_curve(self):
        assert is_on_curve(BASE8)
        assert is_on_curve(GENERATOR)
        assert is_on_curve(IDENTITY)

    def test_identity_is_neutral(self):
        assert point_add(BASE8, IDENTITY) == BASE8
        assert point_add(IDENTITY, BASE8) == BASE8

    def test_negation(self):
        assert point_add(BASE8, point_negate(BASE8)) == IDENTITY

    def test_base8_is_eight_times_generator(self):
        assert scalar_mul(GENERATOR, 8) == BASE8

    def test_scalar_mul_matches_repeated_addition(self):
        acc = IDENTITY
        for k in range(1, 6):
            acc = point_add(acc, BASE8)
            assert scalar_mul(BASE8, k) == acc

    def test_scalar_mul_zero_is_identity(self):
        assert scalar_mul(BASE8, 0) == IDENTITY

    def test_scalar_mul_distributes(self):
        a, b = 123456789, 987654321
        assert scalar_mul(BASE8, a + b) == point_add(scalar_mul(BASE8, a), scalar_mul(BASE8, b))

    def test_negative_scalar_rejected(self):
        with pytest.raises(ValueError):
            scalar_mul(BASE8, -1)


# =============================================================================
# Subgroup & Validation
# =============================================================================


class TestSubgroup:
    """Prime-order subgroup checks."""

    def test_base8_in_subgroup(self):
        assert is_in_subgroup(BASE8)
        assert scalar_mul(BASE8, SUBGROUP_ORDER) == IDENTITY

    def test_generator_not_in_subgroup(self):
        """The full group has order 8l; its generator is outside the subgroup."""
        assert not is_in_subgroup(GENERATOR)
        assert scalar_mul(GENERATOR, 8 * SUBGROUP_ORDER) == IDENTITY

    def test_validate_rejects_off_curve(self):
        with pytest.raises(InvalidPointError):
            validate_point(Point(BASE8.x, BASE8.y + 1))

    def test_validate_rejects_outside_subgroup(self):
        with pytest.raises(InvalidPointError):
            validate_point(GENERATOR)

    def test_validate_rejects_identity(self):
        with pytest.raises(InvalidPointError):
            validate_point(IDENTITY)
        assert validate_point(IDENTITY, allow_identity=True) == IDENTITY


class TestKeyArithmetic:
    """Private keys live mod l, never mod p."""

    def test_public_key_reduces_mod_subgroup_order(self):
        sk = 424242
        assert derive_public_key(sk + SUBGROUP_ORDER) == derive_public_key(sk)

    def test_field_prime_is_not_the_key_modulus(self):
        sk = 424242
        assert FIELD_PRIME != SUBGROUP_ORDER
        assert derive_public_key(sk + FIELD_PRIME) != derive_public_key(sk)

    def test_order_minus_one_is_negation(self):
        assert derive_public_key(SUBGROUP_ORDER - 1) == point_negate(BASE8)


# =============================================================================
# Serialization
# =============================================================================


class TestPointSerialization:
    def test_bytes_round_trip(self):
        p = derive_public_key(99)
        data = p.to_bytes()
        assert len(data) == 64
        assert Point.from_bytes(data) == p

    def test_from_bytes_validates(self):
        with pytest.raises(InvalidPointError):
            Point.from_bytes(GENERATOR.to_bytes())
        assert Point.from_bytes(GENERATOR.to_bytes(), validate=False) == GENERATOR

    def test_from_bytes_wrong_length(self):
        with pytest.raises(InvalidPointError):
            Point.from_bytes(b"\x00" * 63)

    def test_dict_round_trip(self):
        p = derive_public_key(7)
        assert Point.from_dict(p.to_dict()) == p
