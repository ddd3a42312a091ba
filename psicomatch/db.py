from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import NotFoundError


logger = logging.getLogger(__name__)

ISO_FMT = "%Y-%m-%dT%H:%M:%S"

ROLE_PATIENT = "PATIENT"
ROLE_PSYCHOLOGIST = "PSYCHOLOGIST"
ROLE_ADMIN = "ADMIN"


def _now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FMT)


@dataclass(slots=True)
class User:
    id: int
    email: str
    name: Optional[str]
    role: str
    gender: Optional[str]
    age: Optional[int]
    created_at: Optional[str]


@dataclass(slots=True)
class Test:
    id: int
    code: str
    title: Optional[str]
    description: Optional[str]
    category: Optional[str]
    active: bool


@dataclass(slots=True)
class Question:
    id: int
    test_id: int
    text: str
    type: str
    position: int


@dataclass(slots=True)
class AnswerOption:
    id: int
    question_id: int
    text: str
    value: Optional[int]
    position: int


@dataclass(slots=True)
class UserAnswer:
    id: int
    user_id: int
    question_id: int
    answer_id: Optional[int]
    answer_text: Optional[str]
    numeric_value: Optional[float]
    text_value: Optional[str]


class Database:
    def __init__(self, path: Path | str) -> None:
        self.path = path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.executescript(
                """
                PRAGMA foreign_keys = ON;

                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    role TEXT NOT NULL,
                    gender TEXT,
                    age INTEGER,
                    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%S','now'))
                );

                CREATE TABLE IF NOT EXISTS tests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    title TEXT,
                    description TEXT,
                    category TEXT,
                    active INTEGER DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    test_id INTEGER NOT NULL REFERENCES tests(id) ON DELETE CASCADE,
                    text TEXT NOT NULL,
                    type TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    UNIQUE(test_id, position)
                );

                CREATE TABLE IF NOT EXISTS answers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
                    text TEXT NOT NULL,
                    value INTEGER,
                    position INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_answers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
                    answer_id INTEGER REFERENCES answers(id) ON DELETE SET NULL,
                    numeric_value REAL,
                    text_value TEXT,
                    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%S','now'))
                );

                CREATE INDEX IF NOT EXISTS idx_user_answers_user ON user_answers(user_id);
                """
            )

    def close(self) -> None:
        self.conn.close()

    # users

    def upsert_user(
        self,
        email: str,
        role: str,
        name: Optional[str] = None,
        gender: Optional[str] = None,
        age: Optional[int] = None,
    ) -> int:
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO users (email, role, name, gender, age)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (email)
                DO UPDATE SET
                    role=excluded.role,
                    name=excluded.name,
                    gender=excluded.gender,
                    age=excluded.age
                RETURNING id
                """,
                (email, role, name, gender, age),
            )
            row = cursor.fetchone()
            return int(row[0])

    def get_user(self, user_id: int) -> Optional[User]:
        cursor = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    def list_users_by_role(self, role: str) -> List[User]:
        cursor = self.conn.execute(
            "SELECT * FROM users WHERE role = ? ORDER BY id ASC",
            (role,),
        )
        return [self._row_to_user(row) for row in cursor.fetchall()]

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            role=row["role"],
            gender=row["gender"],
            age=row["age"],
            created_at=row["created_at"],
        )

    # questionnaires

    def get_test_by_code(self, code: str) -> Optional[Test]:
        cursor = self.conn.execute("SELECT * FROM tests WHERE code = ?", (code,))
        row = cursor.fetchone()
        if not row:
            return None
        return Test(
            id=row["id"],
            code=row["code"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            active=bool(row["active"]),
        )

    def ensure_test(self, definition: Mapping[str, Any]) -> Test:
        code = definition["code"]
        existing = self.get_test_by_code(code)
        if existing:
            logger.info("Test %s already exists, skipping initialization", code)
            return existing

        logger.info("Creating test %s", code)
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO tests (code, title, description, category) VALUES (?, ?, ?, ?) RETURNING id",
                (code, definition.get("title"), definition.get("description"), definition.get("category")),
            )
            test_id = int(cursor.fetchone()[0])
            for question in definition.get("questions", []):
                cursor = self.conn.execute(
                    "INSERT INTO questions (test_id, text, type, position) VALUES (?, ?, ?, ?) RETURNING id",
                    (test_id, question["text"], question.get("type", "SINGLE"), int(question["position"])),
                )
                question_id = int(cursor.fetchone()[0])
                for index, answer in enumerate(question.get("answers", []), start=1):
                    if isinstance(answer, str):
                        answer = {"text": answer}
                    self.conn.execute(
                        "INSERT INTO answers (question_id, text, value, position) VALUES (?, ?, ?, ?)",
                        (question_id, answer["text"], answer.get("value"), answer.get("position", index)),
                    )
        logger.info("Test %s created with %d questions", code, len(definition.get("questions", [])))
        return Test(
            id=test_id,
            code=code,
            title=definition.get("title"),
            description=definition.get("description"),
            category=definition.get("category"),
            active=True,
        )

    def list_questions(self, test_id: int) -> List[Question]:
        cursor = self.conn.execute(
            "SELECT * FROM questions WHERE test_id = ? ORDER BY position ASC",
            (test_id,),
        )
        return [
            Question(
                id=row["id"],
                test_id=row["test_id"],
                text=row["text"],
                type=row["type"],
                position=row["position"],
            )
            for row in cursor.fetchall()
        ]

    def list_answer_options(self, question_id: int) -> List[AnswerOption]:
        cursor = self.conn.execute(
            "SELECT * FROM answers WHERE question_id = ? ORDER BY position ASC",
            (question_id,),
        )
        return [
            AnswerOption(
                id=row["id"],
                question_id=row["question_id"],
                text=row["text"],
                value=row["value"],
                position=row["position"],
            )
            for row in cursor.fetchall()
        ]

    def get_questionnaire(self, test_code: str) -> Optional[Dict[str, Any]]:
        test = self.get_test_by_code(test_code)
        if not test:
            return None

        questions = []
        for question in self.list_questions(test.id):
            questions.append(
                {
                    "id": question.id,
                    "text": question.text,
                    "type": question.type,
                    "position": question.position,
                    "answers": [
                        {"id": a.id, "text": a.text, "value": a.value, "position": a.position}
                        for a in self.list_answer_options(question.id)
                    ],
                }
            )

        return {
            "id": test.id,
            "code": test.code,
            "title": test.title,
            "description": test.description,
            "questions": questions,
        }

    # user answers

    def list_user_answers(self, user_id: int, test_code: str) -> List[UserAnswer]:
        cursor = self.conn.execute(
            """
            SELECT ua.*, a.text AS answer_text
            FROM user_answers ua
            JOIN questions q ON q.id = ua.question_id
            JOIN tests t ON t.id = q.test_id
            LEFT JOIN answers a ON a.id = ua.answer_id
            WHERE ua.user_id = ? AND t.code = ?
            ORDER BY ua.id ASC
            """,
            (user_id, test_code),
        )
        return [
            UserAnswer(
                id=row["id"],
                user_id=row["user_id"],
                question_id=row["question_id"],
                answer_id=row["answer_id"],
                answer_text=row["answer_text"],
                numeric_value=row["numeric_value"],
                text_value=row["text_value"],
            )
            for row in cursor.fetchall()
        ]

    def has_answers(self, user_id: int, test_code: str) -> bool:
        cursor = self.conn.execute(
            """
            SELECT 1
            FROM user_answers ua
            JOIN questions q ON q.id = ua.question_id
            JOIN tests t ON t.id = q.test_id
            WHERE ua.user_id = ? AND t.code = ?
            LIMIT 1
            """,
            (user_id, test_code),
        )
        return cursor.fetchone() is not None

    def replace_user_answers(
        self,
        user_id: int,
        test_code: str,
        items: Optional[Iterable[Mapping[str, Any]]],
    ) -> int:
        """Store a submission, dropping the user's previous answers for the test.

        Items follow the submission payload: ``questionId``, ``answerId``,
        ``numericValue`` and ``textValue``. Items pointing at a question of
        another test, or carrying no payload at all, are skipped. An
        ``answerId`` that is not an option of the question still counts as
        payload: the row is stored without an option.
        Returns the number of stored rows.
        """
        if items is None:
            raise ValueError("No answers were provided")
        if not isinstance(items, (list, tuple)):
            raise ValueError("Answers must be a list")

        test = self.get_test_by_code(test_code)
        if not test:
            raise NotFoundError(f"Test {test_code} not found")

        question_ids = {q.id for q in self.list_questions(test.id)}
        rows = []
        for item in items:
            if not isinstance(item, Mapping):
                raise ValueError("Each answer must be an object")
            question_id = _optional_int(item.get("questionId"))
            if question_id is None or question_id not in question_ids:
                continue

            answer_id = _optional_int(item.get("answerId"))
            numeric_value = _optional_float(item.get("numericValue"))
            text_value = item.get("textValue")
            text_value = str(text_value).strip() if text_value is not None else None
            if not text_value:
                text_value = None

            if answer_id is None and numeric_value is None and text_value is None:
                continue
            if answer_id is not None and not self._option_belongs_to(answer_id, question_id):
                answer_id = None
            rows.append((user_id, question_id, answer_id, numeric_value, text_value, _now()))

        with self.conn:
            self.conn.execute(
                """
                DELETE FROM user_answers
                WHERE user_id = ?
                  AND question_id IN (SELECT id FROM questions WHERE test_id = ?)
                """,
                (user_id, test.id),
            )
            self.conn.executemany(
                """
                INSERT INTO user_answers (user_id, question_id, answer_id, numeric_value, text_value, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def _option_belongs_to(self, answer_id: int, question_id: int) -> bool:
        cursor = self.conn.execute(
            "SELECT 1 FROM answers WHERE id = ? AND question_id = ?",
            (answer_id, question_id),
        )
        return cursor.fetchone() is not None

    def resolve_selections(
        self,
        test_code: str,
        selections: Mapping[int, Sequence[str] | str],
    ) -> List[Dict[str, int]]:
        """Turn ``{position: option text(s)}`` into submission items."""
        test = self.get_test_by_code(test_code)
        if not test:
            raise NotFoundError(f"Test {test_code} not found")

        by_position = {q.position: q for q in self.list_questions(test.id)}
        items: List[Dict[str, int]] = []
        for position, texts in selections.items():
            question = by_position.get(position)
            if not question:
                raise ValueError(f"{test_code} has no question at position {position}")
            if isinstance(texts, str):
                texts = [texts]
            options = {a.text: a.id for a in self.list_answer_options(question.id)}
            for text in texts:
                if text not in options:
                    raise ValueError(f"{text!r} is not an option of {test_code} question {position}")
                items.append({"questionId": question.id, "answerId": options[text]})
        return items


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except TypeError as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except TypeError as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc
