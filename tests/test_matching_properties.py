"""Property-based tests for card-number normalization and record matching."""

from hypothesis import given, settings
from hypothesis import strategies as st

from fftcg_sync.matching.matcher import CardMatcher, match, numbers_overlap, score
from fftcg_sync.matching.normalizer import normalize, split_numbers, without_rarity
from fftcg_sync.models.card import CatalogRecord, ExternalRecord

number_text = st.text(alphabet="0123456789ABCDEFHLPRabcdhlpr-. /;,", max_size=12)


def catalog(number: str, **fields) -> CatalogRecord:
    defaults = {"id": 1, "name": "Card", "group_id": 10, "card_numbers": [number]}
    defaults.update(fields)
    return CatalogRecord(**defaults)


class TestNormalize:
    """Property: normalize is idempotent and separator/case insensitive."""

    @given(raw=number_text)
    @settings(max_examples=300)
    def test_idempotent(self, raw: str) -> None:
        once = normalize(raw)
        assert normalize(once) == once

    @given(raw=st.text(max_size=20))
    @settings(max_examples=200)
    def test_never_raises(self, raw: str) -> None:
        assert isinstance(normalize(raw), str)

    def test_equivalent_spellings(self) -> None:
        assert normalize("1-001H") == normalize("1001h") == "1-001H"
        assert normalize(" 1.001-h ") == "1-001H"
        assert normalize("24005L") == "24-005L"
        assert normalize("pr1") == "PR-001"
        assert normalize("PR-012") == "PR-012"
        assert normalize("a001") == "A-001"
        assert normalize("Re-001C") == "RE-001C"

    def test_unknown_shapes_are_cleaned_only(self) -> None:
        assert normalize("foo bar") == "FOOBAR"
        assert normalize(None) == ""
        assert normalize("") == ""

    def test_without_rarity(self) -> None:
        assert without_rarity("1-001H") == "1-001"
        assert without_rarity("PR-001") == "PR-001"

    def test_split_numbers(self) -> None:
        assert split_numbers("PR-001/1-001H") == ["PR-001", "1-001H"]
        assert split_numbers("") == []


def external(code: str, **fields) -> ExternalRecord:
    return ExternalRecord(code=code, **fields)


class TestMatch:
    def test_validated_candidate_wins_over_number_only_candidate(self) -> None:
        record = catalog("24-005L", cost="3", power="7000", job="Warrior", rarity="L")
        good = external("24-005L", cost="3", power="7000", job="Knight", rarity="C")
        bad = external("24-005L", cost="9", power="1000", job="Mage", rarity="C")

        for ordering in ([good, bad], [bad, good]):
            result = match(record, ordering)
            assert result is not None
            assert result.external_code == "24-005L"
            assert result.score == 2
            assert sorted(result.matched_attributes) == ["cost", "power"]

    def test_first_validated_candidate_wins(self) -> None:
        record = catalog("1-001H", cost="5", power="9000")
        first = external("1-001H", name="first", cost="5", power="9000")
        second = external("1001H", name="second", cost="5", power="9000")

        result = match(record, [first, second])
        assert result is not None and result.external_code == "1-001H"

    def test_single_agreeing_attribute_is_rejected(self) -> None:
        record = catalog("1-001H", cost="5", power="9000")
        assert match(record, [external("1-001H", cost="5", power="8000")]) is None

    def test_missing_attributes_are_not_checked(self) -> None:
        record = catalog("1-001H", cost="5")
        result = score(record, external("1-001H", cost="5"))
        assert result.checked_attributes == ["cost"]
        assert result.score == 1

    def test_rarity_letters_compare_with_names(self) -> None:
        record = catalog("1-001H", cost="5", rarity="Hero")
        result = score(record, external("1-001H", cost="5", rarity="H"))
        assert "rarity" in result.matched_attributes

    def test_category_is_compared_when_job_is_missing(self) -> None:
        record = catalog("1-001H", cost="5", category="VII")
        result = score(record, external("1-001H", cost="5", category_1="vii"))
        assert result.matched_attributes == ["cost", "job"]

    def test_numbers_must_overlap(self) -> None:
        record = catalog("1-001H", cost="5", power="9000")
        assert match(record, [external("1-002H", cost="5", power="9000")]) is None

    def test_packed_codes_and_missing_rarity_overlap(self) -> None:
        record = catalog("PR-001", cost="5", power="9000")
        assert numbers_overlap(record, external("PR-001/1-001H"))
        assert numbers_overlap(catalog("1-001H"), external("1-001"))

    def test_non_card_records_never_match(self) -> None:
        record = CatalogRecord(id=1, name="Opus I Booster Box", group_id=10, is_non_card=True)
        assert match(record, [external("1-001H")]) is None


@st.composite
def externals_strategy(draw: st.DrawFn) -> list[ExternalRecord]:
    count = draw(st.integers(min_value=0, max_value=12))
    records = []
    for i in range(count):
        code = draw(st.sampled_from(["1-001H", "1-001", "1-002R", "PR-001/1-001H", "2-010C"]))
        records.append(
            ExternalRecord(
                code=code if i % 2 else code.lower(),
                name=f"card {i}",
                cost=draw(st.sampled_from([None, "3", "5"])),
                power=draw(st.sampled_from([None, "7000", "9000"])),
                rarity=draw(st.sampled_from(["", "H", "R"])),
            )
        )
    return records


class TestCardMatcher:
    """Property: the indexed matcher agrees with a linear scan."""

    @given(
        externals=externals_strategy(),
        number=st.sampled_from(["1-001H", "1001h", "PR-001", "1-002R", "3-003C"]),
        cost=st.sampled_from([None, "3", "5"]),
        power=st.sampled_from([None, "7000", "9000"]),
    )
    @settings(max_examples=200)
    def test_index_agrees_with_linear_match(
        self, externals: list[ExternalRecord], number: str, cost, power
    ) -> None:
        record = catalog(number, cost=cost, power=power, rarity="Hero")
        indexed = CardMatcher(externals).match(record)
        linear = match(record, externals)

        if linear is None:
            assert indexed is None
        else:
            assert indexed is not None
            assert indexed.external_code == linear.external_code
            assert indexed.score == linear.score

    def test_get_returns_first_record_for_code(self) -> None:
        first = external("1-001H", name="first")
        second = external("1-001H", name="second")
        matcher = CardMatcher([first, second])
        assert matcher.get("1-001H") is first
        assert matcher.get("9-999H") is None
        assert len(matcher) == 2
