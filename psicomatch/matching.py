from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from functools import reduce
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .db import ROLE_PSYCHOLOGIST, Database, Question, User, UserAnswer
from .errors import NotFoundError


logger = logging.getLogger(__name__)

PATIENT_MATCHING_TEST_CODE = "PATIENT_MATCHING"
PSYCHOLOGIST_MATCHING_TEST_CODE = "PSYCHOLOGIST_MATCHING"

MIN_SCORE = 0.01
MAX_SCORE = 1.0
FILTER_PENALTY = 0.3

Credit = Tuple[float, float]
NO_CREDIT: Credit = (0.0, 0.0)


@dataclass(frozen=True)
class QuestionPositions:
    """Which question of each questionnaire feeds which check.

    The two questionnaires share no question identifiers, so they are
    joined by ordinal position. Reordering either questionnaire requires
    updating this table.
    """

    patient_modality: int = 1
    patient_breakup: int = 6
    patient_areas: int = 8
    patient_duration: int = 9
    patient_affectation: int = 10
    patient_medication: int = 12
    patient_gender: int = 13
    patient_languages: int = 14
    patient_style: int = 15
    patient_schedule: int = 16

    psychologist_modality: int = 1
    psychologist_minor_training: int = 2
    psychologist_minor_experience: int = 3
    psychologist_experience: int = 4
    psychologist_areas: int = 5
    psychologist_complexity: int = 6
    psychologist_style: int = 8
    psychologist_population: int = 9
    psychologist_crisis: int = 10
    psychologist_languages: int = 11
    psychologist_gender: int = 13
    psychologist_schedule: int = 14
    psychologist_medication: int = 16


POSITIONS = QuestionPositions()


class AnswerSheet:
    """A user's answers on one questionnaire, addressable by question position."""

    def __init__(self, questions: Sequence[Question], answers: Iterable[UserAnswer]) -> None:
        self._question_ids = {q.position: q.id for q in questions}
        self._by_question: Dict[int, List[UserAnswer]] = defaultdict(list)
        for answer in answers:
            self._by_question[answer.question_id].append(answer)

    def __bool__(self) -> bool:
        return bool(self._by_question)

    def _answers_at(self, position: int) -> List[UserAnswer]:
        question_id = self._question_ids.get(position)
        if question_id is None:
            return []
        return self._by_question.get(question_id, [])

    def first_text(self, position: int) -> Optional[str]:
        answers = self._answers_at(position)
        if not answers:
            return None
        return answers[0].answer_text

    def texts(self, position: int) -> List[str]:
        return [a.answer_text for a in self._answers_at(position) if a.answer_text]


def clamp_score(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def match_percentage(score: float) -> int:
    # halves round up, unlike round()
    return int(math.floor(score * 100 + 0.5))


# absolute filters


def _works_in_modality(requested: str, offered: str) -> bool:
    if "individual" in requested and "individual adultos" in offered:
        return True
    if "pareja" in requested and "pareja" in offered:
        return True
    if "menor" in requested and "infantojuvenil" in offered:
        return True
    return False


def _modality_ok(patient: AnswerSheet, psychologist: AnswerSheet) -> bool:
    requested = patient.first_text(POSITIONS.patient_modality)
    offered = psychologist.texts(POSITIONS.psychologist_modality)
    if not requested or not offered:
        return True

    if "menor" in requested:
        if psychologist.first_text(POSITIONS.psychologist_minor_training) != "Sí":
            return False
        experience = psychologist.first_text(POSITIONS.psychologist_minor_experience)
        if experience is None or experience == "< 1 año":
            return False

    return any(_works_in_modality(requested, text) for text in offered)


def _overlap_ok(patient_texts: List[str], psychologist_texts: List[str]) -> bool:
    if not patient_texts or not psychologist_texts:
        return True
    return bool(set(patient_texts) & set(psychologist_texts))


def passes_absolute_filters(patient: AnswerSheet, psychologist: AnswerSheet) -> bool:
    if not _modality_ok(patient, psychologist):
        return False
    if not _overlap_ok(
        patient.texts(POSITIONS.patient_languages),
        psychologist.texts(POSITIONS.psychologist_languages),
    ):
        return False
    if not _overlap_ok(
        patient.texts(POSITIONS.patient_schedule),
        psychologist.texts(POSITIONS.psychologist_schedule),
    ):
        return False
    return True


# affinity criteria, each returning (credited, max_weight)


def _contains_any(text: Optional[str], needles: Iterable[str]) -> bool:
    return bool(text) and any(needle in text for needle in needles)


def _long_duration(patient: AnswerSheet) -> bool:
    return _contains_any(patient.first_text(POSITIONS.patient_duration), ("más de 6 meses", "Años"))


def needs_high_experience(patient: AnswerSheet) -> bool:
    affectation = patient.first_text(POSITIONS.patient_affectation)
    return _contains_any(affectation, ("Muchísimo", "Mucho")) or _long_duration(patient)


def is_complex_case(patient: AnswerSheet) -> bool:
    affectation = patient.first_text(POSITIONS.patient_affectation)
    return _contains_any(affectation, ("Muchísimo",)) or _long_duration(patient)


def experience_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    experience = psychologist.first_text(POSITIONS.psychologist_experience)
    if experience is None:
        return NO_CREDIT

    if needs_high_experience(patient):
        weight, fractions = 0.15, (1.0, 0.7, 0.4, 0.0)
    else:
        weight, fractions = 0.10, (1.0, 0.8, 0.6, 0.3)

    if "> 7 años" in experience:
        fraction = fractions[0]
    elif "3–7 años" in experience:
        fraction = fractions[1]
    elif "1–3 años" in experience:
        fraction = fractions[2]
    else:
        fraction = fractions[3]
    return weight * fraction, weight


def work_areas_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    patient_areas = {text.lower() for text in patient.texts(POSITIONS.patient_areas)}
    psychologist_areas = {text.lower() for text in psychologist.texts(POSITIONS.psychologist_areas)}
    if not patient_areas or not psychologist_areas:
        return NO_CREDIT

    weight = 0.20
    covered = sum(
        1
        for area in patient_areas
        if any(area in offered or offered in area for offered in psychologist_areas)
    )
    return weight * covered / len(patient_areas), weight


def complexity_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    handled = psychologist.first_text(POSITIONS.psychologist_complexity)
    if handled is None:
        return NO_CREDIT

    weight = 0.10
    if not is_complex_case(patient):
        return weight * 0.8, weight
    if "leves" in handled:
        return 0.0, weight
    if "complejos" in handled or "adapto" in handled:
        return weight, weight
    return weight * 0.7, weight


def style_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    offered = psychologist.first_text(POSITIONS.psychologist_style)
    preferred = patient.first_text(POSITIONS.patient_style)
    if offered is None or preferred is None:
        return NO_CREDIT

    weight = 0.12
    offered = offered.lower()
    preferred = preferred.lower()
    if "equilibrada" in offered or "equilibrado" in preferred:
        return weight * 0.9, weight
    if ("práctica" in offered and "práctico" in preferred) or (
        "exploratoria" in offered and "exploratorio" in preferred
    ):
        return weight, weight
    return weight * 0.5, weight


def population_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    population = psychologist.first_text(POSITIONS.psychologist_population)
    if population is None or age is None:
        return NO_CREDIT

    weight = 0.08
    if "Todas" in population:
        return weight, weight
    if 18 <= age <= 30 and "18–30" in population:
        return weight, weight
    if 30 < age <= 50 and "30–50" in population:
        return weight, weight
    if age > 50 and "+50" in population:
        return weight, weight
    return weight * 0.3, weight


def crisis_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    crisis = psychologist.first_text(POSITIONS.psychologist_crisis)
    breakup = patient.first_text(POSITIONS.patient_breakup)
    if crisis is None or breakup != "Sí":
        return NO_CREDIT

    weight = 0.10
    if crisis == "Alta":
        return weight, weight
    if crisis == "Media":
        return weight * 0.7, weight
    return weight * 0.3, weight


def gender_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    gender = psychologist.first_text(POSITIONS.psychologist_gender)
    preference = patient.first_text(POSITIONS.patient_gender)
    if gender is None or preference is None or preference == "Indiferente":
        return NO_CREDIT

    weight = 0.05
    return (weight if preference == gender else 0.0), weight


def medication_credit(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int] = None) -> Credit:
    experience = psychologist.first_text(POSITIONS.psychologist_medication)
    medicated = patient.first_text(POSITIONS.patient_medication)
    if experience is None or medicated != "Sí":
        return NO_CREDIT

    weight = 0.10
    if "habitualmente" in experience:
        return weight, weight
    if "algunos casos" in experience:
        return weight * 0.7, weight
    return 0.0, weight


Criterion = Callable[[AnswerSheet, AnswerSheet, Optional[int]], Credit]

CRITERIA: Tuple[Criterion, ...] = (
    experience_credit,
    work_areas_credit,
    complexity_credit,
    style_credit,
    population_credit,
    crisis_credit,
    gender_credit,
    medication_credit,
)


def calculate_affinity_score(patient: AnswerSheet, psychologist: AnswerSheet, age: Optional[int]) -> float:
    credited, possible = reduce(
        lambda acc, credit: (acc[0] + credit[0], acc[1] + credit[1]),
        (criterion(patient, psychologist, age) for criterion in CRITERIA),
        NO_CREDIT,
    )
    if possible <= 0:
        return MIN_SCORE
    return clamp_score(credited / possible)


@dataclass(frozen=True)
class MatchingResult:
    psychologist: User
    affinity_score: float
    match_percentage: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "psychologistId": self.psychologist.id,
            "affinityScore": self.affinity_score,
            "matchPercentage": self.match_percentage,
        }


class MatchingService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def _questions(self, test_code: str) -> List[Question]:
        test = self.db.get_test_by_code(test_code)
        if not test:
            raise NotFoundError(f"Test {test_code} not found")
        return self.db.list_questions(test.id)

    def has_completed_test(self, user_id: int, test_code: str) -> bool:
        return self.db.has_answers(user_id, test_code)

    def calculate_matching(self, patient_id: int) -> List[MatchingResult]:
        patient = self.db.get_user(patient_id)
        if not patient:
            raise NotFoundError(f"Patient {patient_id} not found")

        patient_questions = self._questions(PATIENT_MATCHING_TEST_CODE)
        patient_sheet = AnswerSheet(
            patient_questions,
            self.db.list_user_answers(patient.id, PATIENT_MATCHING_TEST_CODE),
        )
        if not patient_sheet:
            logger.info("Patient %s has not completed %s", patient.id, PATIENT_MATCHING_TEST_CODE)
            return []

        psychologist_questions = self._questions(PSYCHOLOGIST_MATCHING_TEST_CODE)
        psychologists = self.db.list_users_by_role(ROLE_PSYCHOLOGIST)

        results: List[MatchingResult] = []
        for psychologist in psychologists:
            sheet = AnswerSheet(
                psychologist_questions,
                self.db.list_user_answers(psychologist.id, PSYCHOLOGIST_MATCHING_TEST_CODE),
            )
            if not sheet:
                continue

            score = calculate_affinity_score(patient_sheet, sheet, patient.age)
            if not passes_absolute_filters(patient_sheet, sheet):
                score = clamp_score(score * FILTER_PENALTY)
                logger.debug("Psychologist %s fails absolute filters for patient %s", psychologist.id, patient.id)
            score = clamp_score(score)
            results.append(MatchingResult(psychologist, score, match_percentage(score)))

        if not results and psychologists:
            fallback = self._first_completed(psychologists)
            if fallback:
                logger.warning("No scored psychologists for patient %s, falling back to %s", patient.id, fallback.id)
                results.append(MatchingResult(fallback, MIN_SCORE, match_percentage(MIN_SCORE)))

        results.sort(key=lambda r: (-r.affinity_score, r.psychologist.id))
        logger.info("Computed %d matches for patient %s", len(results), patient.id)
        return results

    def _first_completed(self, psychologists: Sequence[User]) -> Optional[User]:
        for psychologist in psychologists:
            if self.has_completed_test(psychologist.id, PSYCHOLOGIST_MATCHING_TEST_CODE):
                return psychologist
        return None
