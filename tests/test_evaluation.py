import sys
import os
import json

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from insight_core.evaluation import EvaluationRecord, EvaluationParseError, parse_evaluation_response


def test_parse_camel_case_dict(sample_evaluation):
    record = parse_evaluation_response(sample_evaluation)
    assert record.overall_score == 68
    assert record.market.competitor_signals == ["dYdX and GMX dominate volume"]
    assert record.summary.main_verdict.startswith("Promising")


def test_parse_snake_case():
    record = parse_evaluation_response({"overall_score": 40, "summary": {"main_verdict": "ok"}})
    assert record.overall_score == 40
    assert record.summary.main_verdict == "ok"


def test_parse_fenced_json(sample_evaluation):
    raw = "```json\n" + json.dumps(sample_evaluation) + "\n```"
    assert parse_evaluation_response(raw).overall_score == 68


def test_parse_json_wrapped_in_prose(sample_evaluation):
    raw = "Here is the evaluation:\n" + json.dumps(sample_evaluation) + "\nLet me know."
    assert parse_evaluation_response(raw).technical.feasibility_score == 70


def test_out_of_range_scores_still_parse():
    record = parse_evaluation_response({"overallScore": 150})
    assert record.overall_score == 150


@pytest.mark.parametrize("raw", [
    "no json here",
    "[1, 2, 3]",
    '{"summary": {}}',
    '{"overallScore": "high"}',
    "{not valid}",
])
def test_parse_errors(raw):
    with pytest.raises(EvaluationParseError):
        parse_evaluation_response(raw)


def test_score_values_skip_missing_launch_readiness(sample_evaluation):
    record = parse_evaluation_response(sample_evaluation)
    paths = [p for p, *_ in record.score_values()]
    assert "overall_score" in paths
    assert "launch_readiness_score" not in paths

    sample_evaluation["launchReadinessScore"] = 12
    paths = [p for p, *_ in parse_evaluation_response(sample_evaluation).score_values()]
    assert "launch_readiness_score" in paths


def test_text_fields_and_round_trip(sample_evaluation):
    record = parse_evaluation_response(sample_evaluation)
    fields = record.text_fields()
    assert list(fields) == [
        "summary", "technical", "technical_components", "technical_risks", "tokenomics",
        "market", "execution", "launch", "recommendations",
    ]
    assert "Bootstrapping liquidity" in fields["market"]
    assert "oracle" in fields["technical_components"]

    d = record.to_dict()
    assert d["overallScore"] == 68
    assert EvaluationRecord.model_validate(d) == record


def test_text_fields_cover_tokenomics_and_components(sample_evaluation):
    sample_evaluation["tokenomics"]["mainIssues"] = ["Emissions dilute holders 40% a year"]
    sample_evaluation["tokenomics"]["suggestions"] = ["Cap supply"]
    sample_evaluation["technical"]["requiredComponents"] = ["Oracle network costing $2 million a year"]
    fields = parse_evaluation_response(sample_evaluation).text_fields()
    assert "40%" in fields["tokenomics"]
    assert "Cap supply" in fields["tokenomics"]
    assert "$2 million" in fields["technical_components"]


def test_list_items_are_separate_sentences(sample_evaluation):
    sample_evaluation["market"]["competitorSignals"] = ["Aave has large TVL", "The market is $4 billion"]
    fields = parse_evaluation_response(sample_evaluation).text_fields()
    assert "Aave has large TVL\nThe market is $4 billion" in fields["market"]
