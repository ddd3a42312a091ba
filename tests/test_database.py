"""
Тесты для psicomatch.db
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from psicomatch.db import ROLE_PATIENT, ROLE_PSYCHOLOGIST, Database
from psicomatch.errors import NotFoundError
from psicomatch.matching import PATIENT_MATCHING_TEST_CODE, PSYCHOLOGIST_MATCHING_TEST_CODE
from psicomatch.resources import load_questionnaires


@pytest.fixture
def db():
    """Создает временную БД для тестов"""
    with tempfile.NamedTemporaryFile(delete=False, suffix='.db') as f:
        db_path = f.name

    database = Database(db_path)
    for definition in load_questionnaires():
        database.ensure_test(definition)
    yield database

    # Cleanup
    database.close()
    if os.path.exists(db_path):
        os.unlink(db_path)


def test_upsert_user(db):
    """Тест создания и обновления пользователя по email"""
    user_id = db.upsert_user('ana@example.com', ROLE_PSYCHOLOGIST, 'Ana', 'Mujer', 41)
    same_id = db.upsert_user('ana@example.com', ROLE_PSYCHOLOGIST, 'Ana García', 'Mujer', 42)

    assert same_id == user_id
    user = db.get_user(user_id)
    assert user.name == 'Ana García'
    assert user.age == 42
    assert user.role == ROLE_PSYCHOLOGIST


def test_get_missing_user(db):
    assert db.get_user(12345) is None


def test_list_users_by_role(db):
    first = db.upsert_user('a@example.com', ROLE_PSYCHOLOGIST)
    db.upsert_user('b@example.com', ROLE_PATIENT)
    second = db.upsert_user('c@example.com', ROLE_PSYCHOLOGIST)

    assert [u.id for u in db.list_users_by_role(ROLE_PSYCHOLOGIST)] == [first, second]


def test_ensure_test_is_idempotent(db):
    """Повторная инициализация не дублирует вопросы"""
    definition = load_questionnaires()[0]
    test = db.ensure_test(definition)
    again = db.ensure_test(definition)

    assert again.id == test.id
    assert len(db.list_questions(test.id)) == len(definition['questions'])


def test_get_questionnaire(db):
    data = db.get_questionnaire(PSYCHOLOGIST_MATCHING_TEST_CODE)

    assert data['code'] == PSYCHOLOGIST_MATCHING_TEST_CODE
    positions = [q['position'] for q in data['questions']]
    assert positions == sorted(positions)
    assert positions[0] == 1
    first = data['questions'][0]
    assert first['type'] == 'MULTIPLE'
    assert [a['text'] for a in first['answers']] == [
        'Terapia individual adultos',
        'Terapia de pareja',
        'Terapia infantojuvenil (menores)',
    ]


def test_get_questionnaire_unknown_code(db):
    assert db.get_questionnaire('UNKNOWN') is None


def test_option_values_are_stored(db):
    data = db.get_questionnaire(PATIENT_MATCHING_TEST_CODE)
    affectation = next(q for q in data['questions'] if q['position'] == 10)

    assert [a['value'] for a in affectation['answers']] == [1, 2, 3, 4]


def test_resolve_selections(db):
    items = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {14: ['Español', 'Inglés'], 1: 'Terapia individual'})

    assert len(items) == 3
    assert all(set(item) == {'questionId', 'answerId'} for item in items)


def test_resolve_selections_rejects_unknown_option(db):
    with pytest.raises(ValueError):
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {1: 'Terapia grupal'})

    with pytest.raises(ValueError):
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {99: 'Sí'})

    with pytest.raises(NotFoundError):
        db.resolve_selections('UNKNOWN', {1: 'Sí'})


def test_replace_user_answers_replaces_previous(db):
    """Новая отправка теста удаляет предыдущие ответы"""
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    db.replace_user_answers(
        user_id, PATIENT_MATCHING_TEST_CODE,
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {14: ['Español', 'Inglés']}),
    )
    db.replace_user_answers(
        user_id, PATIENT_MATCHING_TEST_CODE,
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {14: ['Catalán']}),
    )

    answers = db.list_user_answers(user_id, PATIENT_MATCHING_TEST_CODE)
    assert [a.answer_text for a in answers] == ['Catalán']


def test_replace_user_answers_keeps_other_test(db):
    user_id = db.upsert_user('p@example.com', ROLE_PSYCHOLOGIST)
    db.replace_user_answers(
        user_id, PSYCHOLOGIST_MATCHING_TEST_CODE,
        db.resolve_selections(PSYCHOLOGIST_MATCHING_TEST_CODE, {4: '> 7 años'}),
    )
    db.replace_user_answers(
        user_id, PATIENT_MATCHING_TEST_CODE,
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {1: 'Terapia individual'}),
    )

    assert db.has_answers(user_id, PSYCHOLOGIST_MATCHING_TEST_CODE)
    assert db.has_answers(user_id, PATIENT_MATCHING_TEST_CODE)


def test_replace_user_answers_skips_invalid_items(db):
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    patient_item = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {1: 'Terapia individual'})[0]
    foreign_item = db.resolve_selections(PSYCHOLOGIST_MATCHING_TEST_CODE, {4: '> 7 años'})[0]

    stored = db.replace_user_answers(
        user_id,
        PATIENT_MATCHING_TEST_CODE,
        [
            patient_item,
            foreign_item,
            {'questionId': None, 'answerId': 1},
            {'questionId': patient_item['questionId']},
            {'questionId': patient_item['questionId'], 'textValue': '   '},
        ],
    )

    assert stored == 1
    assert len(db.list_user_answers(user_id, PATIENT_MATCHING_TEST_CODE)) == 1


def test_replace_user_answers_keeps_row_with_unknown_option(db):
    """Чужой или несуществующий answerId сохраняется как ответ без варианта"""
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    patient_item = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {1: 'Terapia individual'})[0]
    foreign_item = db.resolve_selections(PSYCHOLOGIST_MATCHING_TEST_CODE, {4: '> 7 años'})[0]

    stored = db.replace_user_answers(
        user_id,
        PATIENT_MATCHING_TEST_CODE,
        [
            {'questionId': patient_item['questionId'], 'answerId': foreign_item['answerId']},
            {'questionId': patient_item['questionId'], 'answerId': 999999},
        ],
    )

    assert stored == 2
    answers = db.list_user_answers(user_id, PATIENT_MATCHING_TEST_CODE)
    assert [a.answer_id for a in answers] == [None, None]
    assert db.has_answers(user_id, PATIENT_MATCHING_TEST_CODE) is True


def test_replace_user_answers_rejects_malformed_items(db):
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    question_id = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {3: 'Otra'})[0]['questionId']

    for items in ('abc', [1], [{'questionId': [1]}], [{'questionId': question_id, 'numericValue': {}}]):
        with pytest.raises(ValueError):
            db.replace_user_answers(user_id, PATIENT_MATCHING_TEST_CODE, items)


def test_replace_user_answers_free_values(db):
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    question_id = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {3: 'Otra'})[0]['questionId']

    db.replace_user_answers(
        user_id,
        PATIENT_MATCHING_TEST_CODE,
        [{'questionId': question_id, 'textValue': '  Autónomo  ', 'numericValue': '2'}],
    )

    (answer,) = db.list_user_answers(user_id, PATIENT_MATCHING_TEST_CODE)
    assert answer.answer_id is None
    assert answer.answer_text is None
    assert answer.text_value == 'Autónomo'
    assert answer.numeric_value == 2.0


def test_replace_user_answers_requires_list(db):
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)

    with pytest.raises(ValueError):
        db.replace_user_answers(user_id, PATIENT_MATCHING_TEST_CODE, None)

    with pytest.raises(NotFoundError):
        db.replace_user_answers(user_id, 'UNKNOWN', [])


def test_has_answers(db):
    user_id = db.upsert_user('p@example.com', ROLE_PATIENT)
    assert db.has_answers(user_id, PATIENT_MATCHING_TEST_CODE) is False

    db.replace_user_answers(
        user_id, PATIENT_MATCHING_TEST_CODE,
        db.resolve_selections(PATIENT_MATCHING_TEST_CODE, {2: 'No'}),
    )
    assert db.has_answers(user_id, PATIENT_MATCHING_TEST_CODE) is True
