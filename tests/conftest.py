"""
Shared test fixtures for the Insieme backend.
In-memory fakes replace MongoDB, Gemini and the file upload service.
Zero network calls.
"""
import base64
import copy
import json
import uuid

import fitz
import pytest
from fastapi.testclient import TestClient

from insieme.context import ServiceContext
from insieme.errors import PersistenceError, UpstreamUnavailable
from insieme.main import create_app
from insieme.models import Problem
from insieme.services import WorksheetOrchestrationService


class InMemoryDocumentStore:
    """Dict-backed stand-in for insieme.store.DocumentStore."""

    def __init__(self):
        self.collections = {}
        self.failing_collections = set()
        self.writes = []

    def _fail_if_needed(self, collection):
        if collection in self.failing_collections:
            raise PersistenceError(f"Write failed for {collection}")

    async def get(self, collection, doc_id):
        doc = self.collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection, doc_id, data):
        self._fail_if_needed(collection)
        self.collections.setdefault(collection, {})[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        self.writes.append((collection, doc_id))

    async def update(self, collection, doc_id, fields):
        self._fail_if_needed(collection)
        docs = self.collections.setdefault(collection, {})
        if doc_id not in docs:
            return False
        docs[doc_id].update(copy.deepcopy(fields))
        self.writes.append((collection, doc_id))
        return True

    async def add(self, collection, data):
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def find(self, collection, filters, order_by=None, descending=True):
        docs = [
            copy.deepcopy(doc)
            for doc in self.collections.get(collection, {}).values()
            if all(doc.get(key) == value for key, value in filters.items())
        ]
        if order_by:
            docs.sort(key=lambda doc: doc.get(order_by) or "", reverse=descending)
        return docs

    def docs(self, collection):
        return self.collections.get(collection, {})


class FakeAIBackend:
    """
    Returns canned responses in order.

    A response may be a string, an exception instance (raised), or a
    callable taking the prompt.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate(self, prompt, file_ref=None, temperature=0.0, max_output_tokens=2000):
        self.calls.append({"prompt": prompt, "file_ref": file_ref})
        if not self.responses:
            raise AssertionError("AI backend called with no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeFileIngestion:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []
        self.deleted = []

    async def upload_pdf(self, pdf_bytes, display_name="upload.pdf"):
        if self.fail:
            raise UpstreamUnavailable("PDF upload failed", reason="upload_failed")
        file_ref = f"files/{len(self.uploads) + 1}"
        self.uploads.append((file_ref, display_name, pdf_bytes))
        return file_ref

    async def delete(self, file_ref):
        self.deleted.append(file_ref)


def make_pdf_bytes(pages=1):
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), "1. B   2. one half")
    data = doc.tobytes()
    doc.close()
    return data


def make_pdf_data_url(pages=1):
    return "data:application/pdf;base64," + base64.b64encode(make_pdf_bytes(pages)).decode()


def grading_json(score, feedback="ok", reasoning="because", confidence=0.9):
    return json.dumps(
        {"score": score, "feedback": feedback, "reasoning": reasoning, "confidence": confidence}
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ai_backend():
    return FakeAIBackend()


@pytest.fixture
def file_ingestion():
    return FakeFileIngestion()


@pytest.fixture
def context(store, ai_backend, file_ingestion):
    return ServiceContext(store=store, ai_backend=ai_backend, file_ingestion=file_ingestion)


@pytest.fixture
def orchestrator(context):
    return WorksheetOrchestrationService(context)


@pytest.fixture
def client(context):
    with TestClient(create_app(context)) as test_client:
        yield test_client


@pytest.fixture
def mc_problem():
    return Problem(
        id="p1",
        question="Which is larger?",
        options=["A", "B"],
        correct_answer="B",
        explanation="B is larger.",
        type="multiple-choice",
    )


@pytest.fixture
def open_problem():
    return Problem(
        id="p2",
        question="What is the powerhouse of the cell?",
        correct_answer="mitochondria",
        explanation="Mitochondria produce ATP.",
        type="short-answer",
    )
