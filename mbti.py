"""
MBTI 八维测试计分。

每道题给用户 10 分，分配到若干选项上 (单项 0-5 分)。
选项分数累加到该选项指向的人格类型；整题总分累加到题目所属的认知功能。
"""
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

MBTI_TYPES = (
    "ESTP", "ESFP", "ISTP", "ISFP",
    "ENTJ", "ENFJ", "INTJ", "INFJ",
    "ISTJ", "ISFJ", "ESTJ", "ESFJ",
    "INTP", "INFP", "ENTP", "ENFP",
)
COGNITIVE_FUNCTIONS = ("Se", "Si", "Ne", "Ni", "Te", "Ti", "Fe", "Fi")
DEFAULT_TYPE = "INFJ"
POINTS_PER_QUESTION = 10
MAX_OPTION_WEIGHT = 5

OPPOSITES = {"E": "I", "I": "E", "S": "N", "N": "S", "T": "F", "F": "T", "J": "P", "P": "J"}

PERSONALITY_DESCRIPTIONS = {
    "INFJ": "预言家·洞察未来的理想主义者",
    "INFP": "治愈者·寻找意义的理想主义者",
    "INTJ": "建筑师·独立思考的战略家",
    "INTP": "逻辑学家·创新思辨的理论家",
    "ENFJ": "教导者·富有魅力的领袖",
    "ENFP": "倡导者·充满热情的激励者",
    "ENTJ": "指挥官·果断高效的领导者",
    "ENTP": "辩论家·机智创新的挑战者",
    "ISFJ": "守护者·温暖体贴的支持者",
    "ISFP": "探险家·灵活自由的艺术家",
    "ISTJ": "检查员·务实可靠的管理者",
    "ISTP": "工匠·冷静理性的实践者",
    "ESFJ": "执政官·热心友善的组织者",
    "ESFP": "表演者·活力四射的娱乐家",
    "ESTJ": "总经理·高效务实的执行者",
    "ESTP": "企业家·大胆冒险的实干家",
}


class Option(BaseModel):
    id: str
    text: str = ""
    target_types: List[str] = Field(default_factory=list)

    @field_validator("target_types")
    @classmethod
    def check_types(cls, value):
        unknown = [t for t in value if t not in MBTI_TYPES]
        if unknown:
            raise ValueError(f"未知人格类型: {unknown}")
        return value


class Question(BaseModel):
    id: int
    category: str
    question: str = ""
    options: List[Option]


class Answer(BaseModel):
    question_id: int
    weights: Dict[str, int]

    @field_validator("weights")
    @classmethod
    def check_weights(cls, value):
        for option_id, weight in value.items():
            if weight < 0 or weight > MAX_OPTION_WEIGHT:
                raise ValueError(f"选项 {option_id} 的分数需在 0-{MAX_OPTION_WEIGHT} 之间")
        total = sum(value.values())
        if total != POINTS_PER_QUESTION:
            raise ValueError(f"每题需恰好分配 {POINTS_PER_QUESTION} 分，当前 {total} 分")
        return value


class MbtiResult(BaseModel):
    type: str
    score: int
    shadow_type: str
    description: str
    type_scores: Dict[str, int]
    function_scores: Dict[str, int]


def shadow_type(mbti_type: str) -> str:
    """阴影人格：四个字母全部反转"""
    return "".join(OPPOSITES[c] for c in mbti_type)


def score_answers(questions: List[Question], answers: List[Answer]) -> MbtiResult:
    """
    Raises:
        ValueError: 答案引用了不存在的题目或选项
    """
    by_id = {q.id: q for q in questions}
    type_scores = {t: 0 for t in MBTI_TYPES}
    function_scores = {f: 0 for f in COGNITIVE_FUNCTIONS}

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            raise ValueError(f"题目 {answer.question_id} 不存在")
        options = {o.id: o for o in question.options}

        if question.category in function_scores:
            function_scores[question.category] += sum(answer.weights.values())

        for option_id, weight in answer.weights.items():
            option = options.get(option_id)
            if option is None:
                raise ValueError(f"题目 {question.id} 没有选项 {option_id}")
            for t in option.target_types:
                type_scores[t] += weight

    # 严格大于才替换，平分时保留靠前的类型
    best_type, best_score = DEFAULT_TYPE, 0
    for t in MBTI_TYPES:
        if type_scores[t] > best_score:
            best_type, best_score = t, type_scores[t]

    return MbtiResult(
        type=best_type,
        score=best_score,
        shadow_type=shadow_type(best_type),
        description=PERSONALITY_DESCRIPTIONS[best_type],
        type_scores=type_scores,
        function_scores=function_scores,
    )
