import sys
import os
import copy

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

# Evaluation as the model emits it (camelCase). Passes every default check.
SAMPLE_EVALUATION = {
    "overallScore": 68,
    "summary": {
        "title": "Perp DEX for long-tail assets",
        "oneLiner": "A perpetuals exchange on an L2 focused on long-tail markets.",
        "mainVerdict": "Promising but crowded; build a narrow wedge first.",
    },
    "technical": {
        "feasibilityScore": 70,
        "keyRisks": ["Oracle manipulation on thin markets"],
        "requiredComponents": ["matching engine", "oracle", "liquidation bot"],
        "comments": "Standard stack with well-known failure modes.",
    },
    "tokenomics": {"tokenNeeded": False, "designScore": 55},
    "market": {
        "marketFitScore": 60,
        "targetAudience": ["active perp traders"],
        "competitorSignals": ["dYdX and GMX dominate volume"],
        "goToMarketRisks": ["Bootstrapping liquidity"],
    },
    "execution": {"complexityLevel": "high", "executionRiskScore": 50},
    "recommendations": {"mustFixBeforeBuild": ["Pick one chain"]},
}


@pytest.fixture
def sample_evaluation():
    return copy.deepcopy(SAMPLE_EVALUATION)
