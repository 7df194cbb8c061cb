from __future__ import annotations

from pocket_ledger.categories import DEFAULT_CATEGORIES
from pocket_ledger.models import Kind
from pocket_ledger.term_ui import (
    CreateCategoryRequest,
    prompt_new_category_name,
    select_category,
    select_merge_target,
)
from tests.helpers.prompts import pipe_session

EXPENSE_CATEGORIES = [c for c in DEFAULT_CATEGORIES if c.kind is Kind.EXPENSE]
OPTIONS = [("s1", "lunch 12.00"), ("s2", "taxi 30.00"), ("p9", "salary 900.00")]


def test_select_category_accepts_default_with_enter():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        result = select_category(EXPENSE_CATEGORIES, default="Dining", session=sess)
        assert result is not None and not isinstance(result, CreateCategoryRequest)
        assert result.id == "1"


def test_select_category_enter_commits_prefix_completion():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bTrans\r")  # Clear, type a prefix, Enter
        result = select_category(
            EXPENSE_CATEGORIES, default="Dining", session=sess, allow_create=False
        )
        assert result is not None and result.name == "Transport"


def test_select_category_tab_autocompletes_prefix():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bShop\t\r")
        result = select_category(
            EXPENSE_CATEGORIES, default="Dining", session=sess, allow_create=False
        )
        assert result is not None and result.name == "Shopping"


def test_select_category_unknown_name_requests_creation():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bPets\r")
        result = select_category(EXPENSE_CATEGORIES, default="Dining", session=sess)
        assert isinstance(result, CreateCategoryRequest)
        assert result.name == "Pets"


def test_select_category_unknown_name_without_creation_is_none():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bPets\r")
        result = select_category(
            EXPENSE_CATEGORIES, default="Dining", session=sess, allow_create=False
        )
        assert result is None


def test_prompt_new_category_name_revalidates_until_valid():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bbad;name\r\x01\x0bPet food\r")
        assert prompt_new_category_name(initial="", session=sess) == "Pet food"


def test_select_merge_target_by_number():
    with pipe_session() as (pipe, sess):
        pipe.send_text("2\r")
        assert select_merge_target(OPTIONS, session=sess) == "s2"


def test_select_merge_target_rejects_out_of_range_then_accepts():
    with pipe_session() as (pipe, sess):
        pipe.send_text("7\r\x01\x0b3\r")
        assert select_merge_target(OPTIONS, session=sess) == "p9"


def test_select_merge_target_empty_answer_cancels():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert select_merge_target(OPTIONS, session=sess) is None


def test_select_merge_target_without_options_does_not_prompt():
    assert select_merge_target([]) is None
