import pytest

from jpktool.nip import is_valid_nip, normalize_nip


@pytest.mark.parametrize("nip", ["5260250274", "1234563218", "526-025-02-74", "PL5260250274"])
def test_valid_nips(nip):
    assert is_valid_nip(nip)


@pytest.mark.parametrize("nip", ["", None, "123", "12345632180", "1234563219", "abcdefghij"])
def test_invalid_nips(nip):
    assert not is_valid_nip(nip)


def test_residue_ten_is_never_valid():
    # 0,0,0,0,0,0,0,0,3 -> 21 % 11 = 10
    for last in "0123456789":
        assert not is_valid_nip("000000003" + last)


def test_single_digit_mutation_breaks_checksum():
    base = "5260250274"
    for position in range(10):
        for digit in "0123456789":
            if digit == base[position]:
                continue
            mutated = base[:position] + digit + base[position + 1 :]
            assert not is_valid_nip(mutated), mutated


def test_normalize_keeps_digits_only():
    assert normalize_nip("PL 526-025-02-74") == "5260250274"
    assert normalize_nip(None) == ""
