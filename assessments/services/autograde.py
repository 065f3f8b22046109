"""
Rule-based scoring of a submitted answer sheet.

Questions are plain dicts in the snapshot shape produced by
``Question.snapshot()`` (id, question_type, options, correct_answer, points),
so the same code scores live questions and frozen submissions. Answers are
keyed by the question id as a string, the way they are stored on the attempt.

MCQ answers are compared under one canonical normalization everywhere:
surrounding whitespace trimmed, internal runs of whitespace collapsed, and
case folded.
"""
import math
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from assessments.exceptions import ExamConfigurationError

MCQ = "mcq"
DESCRIPTIVE = "descriptive"

# Provisional credit for descriptive answers until a teacher grades them
FULL_CREDIT_MIN_LENGTH = 50
FULL_CREDIT_RATIO = 0.75
HALF_CREDIT_MIN_LENGTH = 20
HALF_CREDIT_RATIO = 0.5

CORRECT = "correct"
PARTIAL = "partial"
INCORRECT = "incorrect"
UNANSWERED = "unanswered"


def normalize_answer(value) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).casefold()


def is_answered(value) -> bool:
    return value is not None and str(value).strip() != ""


def answer_for(answers: Dict[str, str], question_id) -> Optional[str]:
    return (answers or {}).get(str(question_id))


def is_correct_option(question: dict, answer) -> bool:
    if not is_answered(answer) or not question.get("correct_answer"):
        return False
    return normalize_answer(answer) == normalize_answer(question["correct_answer"])


def score_mcq(question: dict, answer) -> int:
    """All or nothing: full points for the correct option, zero otherwise."""
    return int(question["points"]) if is_correct_option(question, answer) else 0


def provisional_descriptive_score(question: dict, answer) -> int:
    length = len(str(answer).strip()) if is_answered(answer) else 0
    points = int(question["points"])
    if length > FULL_CREDIT_MIN_LENGTH:
        return math.floor(points * FULL_CREDIT_RATIO)
    if length > HALF_CREDIT_MIN_LENGTH:
        return math.floor(points * HALF_CREDIT_RATIO)
    return 0


def classify(score, max_score, answered: bool) -> str:
    score = Decimal(str(score))
    if not answered and score <= 0:
        return UNANSWERED
    if score >= Decimal(str(max_score)):
        return CORRECT
    if score <= 0:
        return INCORRECT
    return PARTIAL


def compute_percentage(score, total_marks) -> int:
    """round(score / total_marks * 100), rounding halves up."""
    total = Decimal(str(total_marks))
    if total <= 0:
        raise ExamConfigurationError("Exam total marks must be greater than zero.")
    ratio = Decimal(str(score)) / total * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class QuestionScore:
    question_id: int
    question_type: str
    score: int
    max_score: int
    outcome: str
    provisional: bool = False


@dataclass
class AutoGradeSummary:
    total_score: int
    max_score: int
    total_questions: int
    correct: int
    partial: int
    incorrect: int
    unanswered: int
    percentage: int
    questions: List[QuestionScore] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


def score_question(question: dict, answer) -> QuestionScore:
    max_score = int(question["points"])
    answered = is_answered(answer)
    if question["question_type"] == MCQ:
        score = score_mcq(question, answer)
        provisional = False
    else:
        score = provisional_descriptive_score(question, answer)
        provisional = True
    return QuestionScore(
        question_id=question["id"],
        question_type=question["question_type"],
        score=score,
        max_score=max_score,
        outcome=classify(score, max_score, answered),
        provisional=provisional,
    )


def auto_grade(questions: List[dict], answers: Dict[str, str], total_marks) -> AutoGradeSummary:
    """
    Scores every question of an answer sheet.

    The four outcome buckets (correct, partial, incorrect, unanswered) always
    add up to the number of questions; an unanswered question is never counted
    as incorrect. Raises ExamConfigurationError when total_marks is not positive.
    """
    scored = [score_question(q, answer_for(answers, q["id"])) for q in questions]
    total_score = sum(s.score for s in scored)
    buckets = {CORRECT: 0, PARTIAL: 0, INCORRECT: 0, UNANSWERED: 0}
    for s in scored:
        buckets[s.outcome] += 1

    return AutoGradeSummary(
        total_score=total_score,
        max_score=int(total_marks),
        total_questions=len(scored),
        correct=buckets[CORRECT],
        partial=buckets[PARTIAL],
        incorrect=buckets[INCORRECT],
        unanswered=buckets[UNANSWERED],
        percentage=compute_percentage(total_score, total_marks),
        questions=scored,
    )
