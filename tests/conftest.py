"""Shared fixtures for the skill graph and mastery tests."""

from datetime import datetime, timedelta, timezone

import pytest

from core.knowledge_graph import KnowledgeGraph
from core.mastery_models import QuestionWithWeights, StudentAttempt
from redis_store import RedisStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryRedis:
    """The handful of redis.Redis calls RedisStore makes, backed by dicts."""

    def __init__(self):
        self.strings = {}
        self.hashes = {}
        self.lists = {}

    def set(self, key, value):
        self.strings[key] = value

    def get(self, key):
        return self.strings.get(key)

    def hset(self, key, field=None, value=None, mapping=None):
        target = self.hashes.setdefault(key, {})
        if mapping:
            target.update(mapping)
        if field is not None:
            target[field] = value

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def delete(self, *keys):
        for key in keys:
            self.strings.pop(key, None)
            self.hashes.pop(key, None)
            self.lists.pop(key, None)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return RedisStore(client=InMemoryRedis(), prefix="test")


def make_attempt(question_id, is_correct, minutes=0, student_id="s1", graph_id="g1", **kwargs):
    return StudentAttempt(
        graph_id=graph_id,
        student_id=student_id,
        question_id=question_id,
        is_correct=is_correct,
        attempted_at=NOW + timedelta(minutes=minutes),
        **kwargs,
    )


def make_question(question_id, *skills, **kwargs):
    return QuestionWithWeights(id=question_id, skills=list(skills), **kwargs)


def make_graph(nodes=(), edges=(), question_paths=None, courses=None):
    return KnowledgeGraph.from_dict({
        "nodes": [dict(n) for n in nodes],
        "edges": [{"from": a, "to": b, "reason": ""} for a, b in edges],
        "questionPaths": question_paths or {},
        "courses": courses or {},
    })
