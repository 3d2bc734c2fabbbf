"""Tests for the catalog and official card clients using mocked sessions."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import make_product
from fftcg_sync.ingestion.square_enix_client import OfficialCardClient, to_external_record
from fftcg_sync.ingestion.tcgcsv_client import (
    TcgcsvClient,
    check_response,
    to_catalog_record,
    to_price_records,
)
from fftcg_sync.processing.product_validation import extract_card_numbers, is_non_card_product
from fftcg_sync.utils.errors import (
    InvalidRecordError,
    NonRetryableError,
    QuotaExceededError,
    TransientError,
)


def response(status: int = 200, payload=None) -> MagicMock:
    mock = MagicMock(spec=requests.Response)
    mock.status_code = status
    mock.json.return_value = payload
    return mock


@pytest.fixture
def no_backoff():
    with patch("fftcg_sync.utils.retry.time.sleep") as sleep:
        yield sleep


class TestCheckResponse:
    @pytest.mark.parametrize(
        "status, error",
        [
            (403, NonRetryableError),
            (404, NonRetryableError),
            (429, QuotaExceededError),
            (408, TransientError),
            (500, TransientError),
            (503, TransientError),
        ],
    )
    def test_status_mapping(self, status: int, error: type) -> None:
        with pytest.raises(error):
            check_response(response(status), "https://example.com")

    def test_success_passes(self) -> None:
        check_response(response(200), "https://example.com")


class TestProductMapping:
    def test_card_product(self) -> None:
        record = to_catalog_record(
            make_product(1, number="1-001H", Element="Fire;Ice", Category="VII", Flavor="x")
        )
        assert record.card_numbers == ["1-001H"]
        assert record.elements == ["Fire", "Ice"]
        assert (record.cost, record.power, record.rarity, record.job) == ("5", "9000", "Hero", "SOLDIER")
        assert record.category == "VII"
        assert record.extended_attributes == {"Flavor": "x"}
        assert not record.is_non_card

    def test_promo_numbers_come_from_ext_number(self) -> None:
        record = to_catalog_record(make_product(2, number=None, extNumber="PR-001/1-001H"))
        assert record.card_numbers == ["PR-001", "1-001H"]
        assert record.is_promo
        assert record.primary_card_number == "1-001H"

    def test_sealed_product_has_no_numbers(self) -> None:
        record = to_catalog_record(make_product(3, number=None, name="Opus I Booster Box"))
        assert record.is_non_card
        assert record.card_numbers == []
        assert record.to_document()["cardNumbers"] is None

    def test_card_without_number_is_invalid(self) -> None:
        with pytest.raises(InvalidRecordError) as exc:
            to_catalog_record(make_product(4, number=None))
        assert exc.value.record_id == 4

    def test_missing_ids_are_invalid(self) -> None:
        with pytest.raises(InvalidRecordError):
            to_catalog_record({"name": "Cloud"})

    @pytest.mark.parametrize(
        "field, value",
        [("productId", "not-a-number"), ("groupId", "Opus I"), ("productId", [1])],
    )
    def test_non_numeric_ids_are_invalid(self, field: str, value) -> None:
        product = make_product(5)
        product[field] = value
        with pytest.raises(InvalidRecordError) as exc:
            to_catalog_record(product)
        assert "non-numeric" in exc.value.reason

    @pytest.mark.parametrize("extended", [["Number"], [None], "1-001H", 42])
    def test_malformed_extended_data_is_invalid(self, extended) -> None:
        product = make_product(6)
        product["extendedData"] = extended
        with pytest.raises(InvalidRecordError) as exc:
            to_catalog_record(product)
        assert exc.value.record_id == 6

    def test_non_object_product_is_invalid(self) -> None:
        with pytest.raises(InvalidRecordError):
            to_catalog_record(["productId", 1])

    @given(
        prefix=st.text(alphabet="abcdefghij ", max_size=10),
        keyword=st.sampled_from(["Booster", "BOX", "Starter Deck", "display", "Bundle"]),
        suffix=st.text(alphabet="0123456789 ", max_size=10),
    )
    @settings(max_examples=100)
    def test_sealed_keywords_are_case_insensitive(
        self, prefix: str, keyword: str, suffix: str
    ) -> None:
        assert is_non_card_product(f"{prefix}{keyword}{suffix}")

    def test_extract_card_numbers_deduplicates(self) -> None:
        assert extract_card_numbers({"Number": "1-001H / 1-001H"}) == ["1-001H"]
        assert extract_card_numbers({}) == []


class TestPriceMapping:
    def test_rows_are_grouped_by_product(self) -> None:
        prices = to_price_records(
            [
                {"productId": 1, "subTypeName": "Normal", "marketPrice": 1.5, "directLowPrice": None},
                {"productId": 1, "subTypeName": "Foil", "marketPrice": 4.0, "lowPrice": None},
                {"productId": 2, "subTypeName": "Normal", "midPrice": 0.25},
                {"productId": 3, "subTypeName": "Reverse Holo", "midPrice": 9},
            ],
            group_id=100,
        )
        assert [p.product_id for p in prices] == [1, 2]
        assert prices[0].normal.market_price == 1.5
        assert prices[0].normal.direct_low_price is None
        assert prices[0].foil.low_price == 0.0
        assert prices[1].foil is None
        assert prices[1].to_document()["groupId"] == 100

    def test_malformed_rows_are_skipped(self) -> None:
        prices = to_price_records(
            [
                {"productId": "abc", "subTypeName": "Normal", "marketPrice": 1.0},
                {"productId": 1, "subTypeName": "Normal", "marketPrice": "n/a"},
                {"productId": 1, "subTypeName": "Foil", "directLowPrice": {"usd": 3}},
                {"productId": 2, "subTypeName": "Normal", "marketPrice": "2.5"},
                "not a row",
            ],
            group_id=100,
        )
        assert [p.product_id for p in prices] == [2]
        assert prices[0].normal.market_price == 2.5


class TestTcgcsvClient:
    def test_fetch_groups(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(
            200, {"results": [{"groupId": 1, "name": "Opus I", "modifiedOn": "2024-01-01"}]}
        )
        client = TcgcsvClient(base_url="https://tcg.example.com/", session=session)

        groups = client.fetch_groups()
        assert [g.group_id for g in groups] == [1]
        assert session.get.call_args[0][0] == "https://tcg.example.com/24/groups"

    def test_transient_failures_are_retried(self, no_backoff) -> None:
        session = MagicMock()
        session.get.side_effect = [
            requests.exceptions.Timeout("slow"),
            response(503),
            response(200, {"results": [{"productId": 1}]}),
        ]
        client = TcgcsvClient(session=session)

        assert client.fetch_products(5) == [{"productId": 1}]
        assert session.get.call_count == 3
        assert no_backoff.call_count == 2

    def test_access_denied_is_not_retried(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(403)
        client = TcgcsvClient(session=session)

        with pytest.raises(NonRetryableError):
            client.fetch_prices(5)
        assert session.get.call_count == 1

    def test_payload_without_results_is_rejected(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(200, {"success": False})
        with pytest.raises(NonRetryableError):
            TcgcsvClient(session=session).fetch_groups()

    async def test_async_facade(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(
            200, {"results": [{"productId": 1, "subTypeName": "Normal", "marketPrice": 2.0}]}
        )
        prices = await TcgcsvClient(session=session).get_prices(7)
        assert prices[0].group_id == 7


OFFICIAL_CARD = {
    "code": "1-001H",
    "name_en": "Auron",
    "type_en": "Forward",
    "job_en": "Guardian",
    "text_en": "[[ex]]EX BURST[[/]] text",
    "element": ["火"],
    "rarity": "H",
    "cost": "5",
    "power": "9000",
    "category_1": "X",
    "category_2": "",
    "multicard": "0",
    "ex_burst": "1",
    "set": ["Opus I"],
    "images": {"thumbs": ["t.jpg"], "full": ["f.jpg"]},
}


class TestOfficialCardClient:
    def test_maps_raw_card(self) -> None:
        record = to_external_record(OFFICIAL_CARD)
        assert record.name == "Auron"
        assert record.card_type == "Forward"
        assert record.elements == ["火"]
        assert record.ex_burst and not record.multicard
        assert record.category_2 is None
        assert record.images.full == ["f.jpg"]

    def test_blank_cost_becomes_none(self) -> None:
        assert to_external_record({**OFFICIAL_CARD, "power": ""}).power is None

    def test_fetch_establishes_session_first(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(200)
        session.post.return_value = response(
            200, {"count": 2, "cards": [OFFICIAL_CARD, {"name_en": "no code"}]}
        )
        client = OfficialCardClient(base_url="https://official.example.com/en", session=session)

        records = client.fetch_all_cards()
        assert [r.code for r in records] == ["1-001H"]
        assert session.get.call_args[0][0] == "https://official.example.com/en/card-browser"
        assert session.post.call_args[0][0] == "https://official.example.com/en/get-cards"
        assert session.post.call_args[1]["json"]["language"] == "en"

    def test_missing_cards_array_is_rejected(self, no_backoff) -> None:
        session = MagicMock()
        session.get.return_value = response(200)
        session.post.return_value = response(200, {"count": 0})
        with pytest.raises(NonRetryableError):
            OfficialCardClient(session=session).fetch_all_cards()
