import pytest


@pytest.fixture
def cheat_sheet_payload():
    return {
        "title": "Derivatives",
        "overview": "Rates of change and slopes of tangent lines.",
        "sections": [
            {"heading": "Rules", "bullets": ["Power rule", "Chain rule"]},
            {"heading": "Notation", "bullets": []},
        ],
        "formulas": [
            {"name": "Power rule", "expression": "d/dx x^n = n x^(n-1)", "note": None},
            {"name": "Product rule", "expression": "(fg)' = f'g + fg'", "note": "order does not matter"},
        ],
        "common_mistakes": ["Forgetting the chain rule"],
        "mini_examples": [
            {"prompt": "Differentiate x^3", "steps": ["Apply the power rule"], "answer": "3x^2"},
        ],
        "practice": [{"question": "d/dx sin(x)?", "answer": "cos(x)"}],
    }
