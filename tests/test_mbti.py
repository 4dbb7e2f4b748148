import pytest
from pydantic import ValidationError

from mbti import Answer, Option, Question, score_answers, shadow_type

QUESTIONS = [
    Question(id=1, category="Ni", question="你更相信？", options=[
        Option(id="a", text="直觉", target_types=["INFJ", "INTJ"]),
        Option(id="b", text="可能性", target_types=["ENFP"]),
    ]),
    Question(id=2, category="Fe", question="团队里你更常？", options=[
        Option(id="a", text="照顾氛围", target_types=["ENFJ", "ESFJ"]),
        Option(id="b", text="推进目标", target_types=["ENTJ"]),
        Option(id="c", text="拍板决策", target_types=["ENTJ", "ESTJ"]),
    ]),
]


def test_shadow_type():
    assert shadow_type("INFJ") == "ESTP"
    assert shadow_type("ENTP") == "ISFJ"


def test_answer_must_total_ten():
    with pytest.raises(ValidationError):
        Answer(question_id=1, weights={"a": 5, "b": 4})


def test_option_weight_capped():
    with pytest.raises(ValidationError):
        Answer(question_id=1, weights={"a": 6, "b": 4})


def test_unknown_type_rejected():
    with pytest.raises(ValidationError):
        Option(id="x", target_types=["ABCD"])


def test_score_answers():
    result = score_answers(QUESTIONS, [
        Answer(question_id=1, weights={"a": 5, "b": 5}),
        Answer(question_id=2, weights={"a": 2, "b": 4, "c": 4}),
    ])
    # ENTJ 得 8 分，领先于 5 分的 INTJ/INFJ/ENFP
    assert result.type == "ENTJ"
    assert result.score == 8
    assert result.shadow_type == "ISFP"
    assert result.function_scores["Ni"] == 10
    assert result.function_scores["Fe"] == 10
    assert result.type_scores["ENFJ"] == 2
    assert result.type_scores["ESTJ"] == 4


def test_tie_keeps_earlier_type():
    result = score_answers(QUESTIONS, [Answer(question_id=1, weights={"a": 5, "b": 5})])
    assert result.type == "INTJ"


def test_no_answers_defaults_to_infj():
    result = score_answers(QUESTIONS, [])
    assert result.type == "INFJ"
    assert result.score == 0


def test_unknown_question_or_option():
    with pytest.raises(ValueError):
        score_answers(QUESTIONS, [Answer(question_id=9, weights={"a": 5, "b": 5})])
    with pytest.raises(ValueError):
        score_answers(QUESTIONS, [Answer(question_id=1, weights={"a": 5, "z": 5})])
