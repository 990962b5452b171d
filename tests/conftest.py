import pytest

from helpers.fakes import FakeDb, MockRepository, RecordingNotifier
from screening_engine.engine import ScreeningEngine

# Score is the sum of selected option scores; complete once every question
# has a current answer.
SUM_SCORING_RULE = """
outputs:
  completed: false
  score: {fact: total_score}
rules:
  - name: every question answered
    when:
      - {fact: all_answered, op: eq, value: true}
    then:
      completed: true
"""

# Finish the session as soon as the current screening is complete.
COMPLETE_WHEN_DONE_RULE = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
rules:
  - when:
      - {fact: current.completed, op: eq, value: true}
    then:
      completed: true
"""

# SCREEN-A scoring 3 or more branches to SCREEN-B; anything else completes.
BRANCHING_RULE = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
rules:
  - name: high A score continues to B
    when:
      - {fact: current.screening_name, op: eq, value: SCREEN-A}
      - {fact: current.completed, op: eq, value: true}
      - {fact: current.score, op: ge, value: 3}
    then:
      next_screening_id: {fact: screenings_by_name.SCREEN-B.screening_id}
  - name: otherwise finish
    when:
      - {fact: current.completed, op: eq, value: true}
    then:
      completed: true
"""

# Flag crisis whenever any current answer indicates it; finish when done.
CRISIS_RULE = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
rules:
  - name: crisis and finished
    when:
      - {fact: crisis_indicated_by_answer, op: eq, value: true}
      - {fact: current.completed, op: eq, value: true}
    then:
      crisis_indicated: true
      completed: true
  - name: crisis mid-screening
    when:
      - {fact: crisis_indicated_by_answer, op: eq, value: true}
    then:
      crisis_indicated: true
  - name: finished
    when:
      - {fact: current.completed, op: eq, value: true}
    then:
      completed: true
"""

# Defective: completes the session and names a next screening at once.
CONTRADICTORY_RULE = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
rules:
  - when:
      - {fact: current.completed, op: eq, value: true}
    then:
      completed: true
      next_screening_id: {fact: screenings_by_name.SCREEN-B.screening_id}
"""

YES_NO = [("No", 0), ("Yes", 3)]


@pytest.fixture
def mock_repo():
    """Fresh MockRepository for each test."""
    return MockRepository()


@pytest.fixture
def mock_db(mock_repo):
    """FakeDb standing in for AsyncSession."""
    return FakeDb(mock_repo)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(mock_repo, notifier):
    """ScreeningEngine wired to the in-memory repository."""
    return ScreeningEngine(repository=mock_repo, crisis_notifier=notifier)


@pytest.fixture
def account(mock_repo):
    return mock_repo.add_account()
