"""Tests for token estimation and output budgeting."""

from polaris_orchestrator.providers.budget import approx_tokens, budget_output_tokens, estimate_cost


def test_approx_tokens_rounds_up():
    assert approx_tokens("") == 0
    assert approx_tokens(None) == 0
    assert approx_tokens("abcd") == 1
    assert approx_tokens("abcde") == 2


def test_budget_capped_at_desired_max():
    assert budget_output_tokens(200_000, ["short prompt"], desired_max=4000) == 4000


def test_budget_shrinks_with_large_inputs():
    prompt = "x" * 4 * 30_000
    assert budget_output_tokens(32_000, [prompt], desired_max=8096, reserve=512) == 32_000 - 30_000 - 512


def test_budget_never_negative():
    assert budget_output_tokens(1000, ["x" * 10_000]) == 0


def test_estimate_cost():
    assert estimate_cost(1000, 0.000003) == 0.003
