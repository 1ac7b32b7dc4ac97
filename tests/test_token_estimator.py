"""Tests for companion.services.token_estimator: cost rules and fallback estimate."""

import json
import math

import pytest

from companion.services.token_estimator import TokenCostEstimator, credit_cost, fallback_estimate


class TestCreditCost:
    def test_zero_tokens_cost_nothing(self) -> None:
        assert credit_cost(0) == 0

    @pytest.mark.parametrize("tokens", [1, 250, 999, 1000])
    def test_first_thousand_tokens_cost_one_credit(self, tokens: int) -> None:
        assert credit_cost(tokens) == 1

    def test_rounds_up_past_each_thousand(self) -> None:
        assert credit_cost(1001) == 2
        assert credit_cost(2000) == 2
        assert credit_cost(2001) == 3

    def test_monotone(self) -> None:
        costs = [credit_cost(t) for t in range(0, 5001, 37)]
        assert costs == sorted(costs)

    def test_custom_rate(self) -> None:
        assert credit_cost(150, tokens_per_credit=100) == 2


class TestFallbackEstimate:
    def test_string_counts_its_json_quotes(self) -> None:
        # "abcdef" serializes to 8 bytes including the quotes
        assert fallback_estimate("abcdef") == 2
        assert fallback_estimate("abcdefg") == 3

    def test_multibyte_text_counts_bytes(self) -> None:
        # "é" is two bytes in UTF-8
        assert fallback_estimate("ééé") == 2

    def test_structured_payload_serialized_as_json(self) -> None:
        payload = [{"role": "USER", "text": "héllo"}]
        expected = math.ceil(len(json.dumps(payload, ensure_ascii=False).encode("utf-8")) / 4)
        assert fallback_estimate(payload) == expected


class TestTokenCostEstimator:
    def test_uses_counter_when_available(self) -> None:
        estimator = TokenCostEstimator(counter=lambda payload: 1234)
        assert estimator.estimate("anything") == 1234
        assert estimator.cost(1234) == 2

    def test_falls_back_when_counter_raises(self) -> None:
        def broken(payload):
            raise RuntimeError("tokenizer offline")

        estimator = TokenCostEstimator(counter=broken)
        assert estimator.estimate("abcdef") == 2

    def test_falls_back_on_non_positive_count(self) -> None:
        estimator = TokenCostEstimator(counter=lambda payload: 0)
        assert estimator.estimate("ab") == 1

    def test_no_counter_uses_fallback(self) -> None:
        assert TokenCostEstimator().estimate("abcdefghij") == 3
