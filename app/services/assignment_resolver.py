"""
Assignment resolver - maps submitted answers to the collections they grant

Two sources of grants, evaluated in this order:
1. Direct: the selected option of a multiple-choice/true-false question
   carries `assign_collection`
2. Rules: every condition {question_id, option_id} of an assignment rule
   matches the submitted answers (AND)

Text and informational questions never grant anything but are still recorded.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from app.services.errors import ValidationError
from app.utils.dates import isoformat

logger = logging.getLogger(__name__)

CHOICE_QUESTION_TYPES = ("multiple-choice", "true-false")


def validate_answers(answers: Any) -> List[Dict[str, Any]]:
    """Reject malformed submissions before anything is written"""
    if not isinstance(answers, list):
        raise ValidationError("Answers must be a list")

    cleaned = []
    for index, answer in enumerate(answers):
        if not isinstance(answer, Mapping):
            raise ValidationError(f"Answer #{index} must be an object")
        if not answer.get("question_id"):
            raise ValidationError(f"Answer #{index} is missing question_id")
        if answer.get("option_id") is None and answer.get("text_answer") is None:
            raise ValidationError(
                f"Answer #{index} must have either option_id or text_answer"
            )
        cleaned.append(dict(answer))
    return cleaned


def build_answer_map(answers: List[Dict[str, Any]]) -> Dict[str, Any]:
    """question_id -> selected option id (or the text answer)"""
    return {
        str(answer["question_id"]): (
            str(answer["option_id"]) if answer.get("option_id") else answer.get("text_answer")
        )
        for answer in answers
    }


def _find_by_id(items: List[Dict[str, Any]], item_id: Any) -> Optional[Dict[str, Any]]:
    for item in items or []:
        if str(item.get("id")) == str(item_id):
            return item
    return None


def rule_matches(rule: Dict[str, Any], answer_map: Dict[str, Any]) -> bool:
    return all(
        answer_map.get(str(condition.get("question_id"))) == str(condition.get("option_id"))
        for condition in rule.get("conditions") or []
    )


def resolve_collections(
    quiz: Any,
    answers: List[Dict[str, Any]],
    find_collection: Callable[[Any], Any],
) -> Dict[str, Any]:
    """
    Resolve the deduplicated collections granted by a submission

    Args:
        quiz: Quiz with `questions` and `assignment_rules`
        answers: validated answer dicts
        find_collection: lookup returning a Collection or None

    Returns:
        Insertion-ordered {collection_id: Collection}; first occurrence wins
    """
    answer_map = build_answer_map(answers)
    collections: Dict[str, Any] = {}

    def grant(collection_ref: Any, source: str) -> None:
        if not collection_ref:
            return
        if str(collection_ref) in collections:
            return
        collection = find_collection(collection_ref)
        if collection is None:
            logger.warning(f"Collection {collection_ref} referenced by {source} no longer exists")
            return
        if str(collection.id) in collections:
            return
        logger.info(f"Assigning collection '{collection.name}' from {source}")
        collections[str(collection.id)] = collection

    for question in quiz.questions or []:
        if question.get("type") not in CHOICE_QUESTION_TYPES:
            continue
        selected_option_id = answer_map.get(str(question.get("id")))
        if not selected_option_id:
            continue
        option = _find_by_id(question.get("options"), selected_option_id)
        if option is not None:
            grant(option.get("assign_collection"), "direct answer")

    for rule in quiz.assignment_rules or []:
        if rule_matches(rule, answer_map):
            grant(rule.get("assign_collection"), f"rule {rule.get('id')}")

    logger.info(f"Total collections to assign for quiz '{quiz.name}': {len(collections)}")
    return collections


def _record_answer(quiz: Any, answer: Dict[str, Any]) -> Dict[str, Any]:
    question = _find_by_id(quiz.questions, answer.get("question_id"))
    question_text = question.get("question_text") if question else "N/A"

    if answer.get("text_answer") is not None:
        return {
            "question": question_text or "N/A",
            "answer": answer["text_answer"],
            "question_type": question.get("type") if question else "text",
        }

    option = _find_by_id(question.get("options"), answer.get("option_id")) if question else None
    return {
        "question": question_text or "N/A",
        "answer": option.get("text") if option else "N/A",
        "question_type": question.get("type") if question else "multiple-choice",
    }


def build_result_record(
    quiz: Any,
    answers: List[Dict[str, Any]],
    collections: Dict[str, Any],
    now: datetime,
) -> Dict[str, Any]:
    """Immutable quiz result entry appended to user.quiz_results"""
    submitted_at = isoformat(now)
    return {
        "quiz_id": str(quiz.id),
        "quiz_name": quiz.name,
        "answers": [_record_answer(quiz, answer) for answer in answers],
        "submitted_at": submitted_at,
        "completed_at": submitted_at,
        "assigned_collections": [
            {
                "collection_id": str(collection.id),
                "collection_name": collection.name,
                "assigned_at": submitted_at,
            }
            for collection in collections.values()
        ],
    }
