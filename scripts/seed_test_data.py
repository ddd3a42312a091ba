#!/usr/bin/env python3
"""
Скрипт для заполнения БД тестовыми данными
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from psicomatch.config import get_settings
from psicomatch.db import ROLE_PATIENT, ROLE_PSYCHOLOGIST
from psicomatch.main import init_database
from psicomatch.matching import (
    PATIENT_MATCHING_TEST_CODE,
    PSYCHOLOGIST_MATCHING_TEST_CODE,
    MatchingService,
)

# Тестовые данные
TEST_PSYCHOLOGISTS = [
    {
        'email': 'ana.garcia@example.com',
        'name': 'Ana García',
        'gender': 'Mujer',
        'age': 41,
        'answers': {
            1: ['Terapia individual adultos', 'Terapia de pareja'],
            4: '> 7 años',
            5: ['Ansiedad', 'Depresión', 'Pareja', 'Duelo'],
            6: 'Me adapto a cualquier nivel',
            8: 'Equilibrada',
            9: 'Todas las edades',
            10: 'Alta',
            11: ['Español', 'Inglés'],
            13: 'Mujer',
            14: ['Mañanas', 'Tardes'],
            16: 'Sí, habitualmente',
        },
    },
    {
        'email': 'jordi.puig@example.com',
        'name': 'Jordi Puig',
        'gender': 'Hombre',
        'age': 33,
        'answers': {
            1: ['Terapia individual adultos', 'Terapia infantojuvenil (menores)'],
            2: 'Sí',
            3: '> 3 años',
            4: '3–7 años',
            5: ['Ansiedad', 'TDAH', 'Familia', 'Autoestima'],
            6: 'Casos moderados',
            8: 'Práctica y directiva',
            9: '18–30',
            10: 'Media',
            11: ['Español', 'Catalán'],
            13: 'Hombre',
            14: ['Tardes', 'Noches'],
            16: 'Sí, en algunos casos',
        },
    },
    {
        'email': 'lucia.martin@example.com',
        'name': 'Lucía Martín',
        'gender': 'Mujer',
        'age': 27,
        'answers': {
            1: ['Terapia de pareja'],
            4: '1–3 años',
            5: ['Pareja', 'Sexualidad'],
            6: 'Principalmente casos leves',
            8: 'Exploratoria y reflexiva',
            9: '30–50',
            10: 'Baja',
            11: ['Español', 'Francés'],
            13: 'Mujer',
            14: ['Fines de semana'],
            16: 'No',
        },
    },
]

TEST_PATIENTS = [
    {
        'email': 'carlos.ruiz@example.com',
        'name': 'Carlos Ruiz',
        'gender': 'Hombre',
        'age': 29,
        'answers': {
            1: 'Terapia individual',
            6: 'Sí',
            8: ['Ansiedad', 'Duelo'],
            9: 'Desde hace más de 6 meses',
            10: 'Mucho',
            12: 'No',
            13: 'Indiferente',
            14: ['Español'],
            15: 'Más práctico y directivo',
            16: ['Tardes'],
        },
    },
    {
        'email': 'marta.soler@example.com',
        'name': 'Marta Soler',
        'gender': 'Mujer',
        'age': 52,
        'answers': {
            1: 'Terapia de pareja',
            6: 'No',
            8: ['Problemas de pareja', 'Autoestima'],
            9: 'Entre 1 y 6 meses',
            10: 'Bastante',
            12: 'Sí',
            13: 'Mujer',
            14: ['Español', 'Francés'],
            15: 'Equilibrado',
            16: ['Mañanas', 'Fines de semana'],
        },
    },
]


def seed_database():
    """Заполнить БД тестовыми данными"""

    settings = get_settings()
    db = init_database(settings)

    print("🌱 Заполнение БД тестовыми данными...")
    print()

    print("👨‍⚕️ Создание психологов...")
    for psych in TEST_PSYCHOLOGISTS:
        user_id = db.upsert_user(psych['email'], ROLE_PSYCHOLOGIST, psych['name'], psych['gender'], psych['age'])
        items = db.resolve_selections(PSYCHOLOGIST_MATCHING_TEST_CODE, psych['answers'])
        db.replace_user_answers(user_id, PSYCHOLOGIST_MATCHING_TEST_CODE, items)
        print(f"  ✅ {psych['name']} (ID: {user_id})")

    print()

    print("👤 Создание пациентов...")
    patient_ids = []
    for patient in TEST_PATIENTS:
        user_id = db.upsert_user(patient['email'], ROLE_PATIENT, patient['name'], patient['gender'], patient['age'])
        items = db.resolve_selections(PATIENT_MATCHING_TEST_CODE, patient['answers'])
        db.replace_user_answers(user_id, PATIENT_MATCHING_TEST_CODE, items)
        patient_ids.append(user_id)
        print(f"  ✅ {patient['name']} (ID: {user_id})")

    print()

    print("🔥 Расчет совместимости...")
    service = MatchingService(db)
    for patient_id in patient_ids:
        for result in service.calculate_matching(patient_id):
            print(f"  {patient_id} -> {result.psychologist.name}: {result.match_percentage}%")

    print()
    print("🎉 Готово! Тестовые данные добавлены.")
    db.close()


if __name__ == '__main__':
    seed_database()
