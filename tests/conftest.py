"""Shared pytest fixtures for journeyforge tests."""

from pathlib import Path

import pytest

from journeyforge.domain.models import IRProgram, JourneyDocument
from journeyforge.execution.classifier import FailureClassifier
from journeyforge.infrastructure.knowledge.memory import InMemoryKnowledgeBase
from journeyforge.ir.builder import build_program
from journeyforge.journey.parser import parse_journey

SIGN_IN_JOURNEY = """---
id: JRN-0001
title: User signs in
actor: registered user
tier: smoke
tags: [auth]
completion:
  - type: url-match
    value: /dashboard
---

# Sign in

## Steps

### Step 1: Open the login page
- Navigate to /login

### Step 2: Enter credentials
- Fill "Email" with "{{email}}"
- Fill "Password" with "{{password}}"

### Step 3: Submit
- Click "Sign in" button

### Step 4: Greeting
- The user should see "Welcome back"
"""

SUBMIT_JOURNEY = """---
id: JRN-0002
title: Submit order
actor: customer
tier: regression
---

## Steps

1. Navigate to /checkout
2. Click the submit control [jf action=click css="#submit"]
"""

BLOCKED_JOURNEY = """---
id: JRN-0003
title: Export report
actor: analyst
---

## Steps

- Navigate to /reports
- Perform some arcane ritual on the report
"""


@pytest.fixture
def sign_in_document() -> JourneyDocument:
    """Parsed sign-in Journey (four steps, url completion signal)."""
    return parse_journey(SIGN_IN_JOURNEY, "journeys/sign-in.md")


@pytest.fixture
def sign_in_program(sign_in_document: JourneyDocument) -> IRProgram:
    """IR for the sign-in Journey, built without a knowledge base."""
    return build_program(sign_in_document)


@pytest.fixture
def submit_program() -> IRProgram:
    """IR whose submit click uses the raw css selector ``#submit``."""
    return build_program(parse_journey(SUBMIT_JOURNEY, "journeys/submit.md"))


@pytest.fixture
def blocked_program() -> IRProgram:
    """IR with one unmappable line."""
    return build_program(parse_journey(BLOCKED_JOURNEY, "journeys/report.md"))


@pytest.fixture
def classifier() -> FailureClassifier:
    return FailureClassifier()


@pytest.fixture
def memory_kb() -> InMemoryKnowledgeBase:
    """Empty in-memory knowledge base that records learning events."""
    return InMemoryKnowledgeBase()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Working directory holding the sign-in and submit Journeys."""
    journeys = tmp_path / "journeys"
    journeys.mkdir()
    (journeys / "sign-in.md").write_text(SIGN_IN_JOURNEY, encoding="utf-8")
    (journeys / "submit.md").write_text(SUBMIT_JOURNEY, encoding="utf-8")
    return tmp_path

