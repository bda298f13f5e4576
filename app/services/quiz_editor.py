"""
Full-replace quiz edits with client-side temporary ids

The admin editor creates questions/options/rules offline with ids like
"temp_1697...". On save those are swapped for real ids in two passes:

1. questions and options: generate ids, remember old -> new in an id map
2. rule conditions: rewrite through the id map; when an option id is not in
   the map, look it up structurally in the processed question
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings

logger = logging.getLogger(__name__)


def _is_temporary(item_id: Any, prefix: str) -> bool:
    return isinstance(item_id, str) and item_id.startswith(prefix)


def _resolve_id(item_id: Any, id_map: Dict[str, str], prefix: str) -> str:
    """Keep a real id, replace a temporary or missing one"""
    if item_id and not _is_temporary(item_id, prefix):
        return str(item_id)
    new_id = str(uuid.uuid4())
    if item_id:
        id_map[item_id] = new_id
    return new_id


def process_questions(
    questions: List[Dict[str, Any]], prefix: str
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    id_map: Dict[str, str] = {}
    processed = []
    for question in questions or []:
        question_id = _resolve_id(question.get("id"), id_map, prefix)
        options = [
            {
                "id": _resolve_id(option.get("id"), id_map, prefix),
                "text": option.get("text"),
                "assign_collection": _optional_str(option.get("assign_collection")),
            }
            for option in question.get("options") or []
        ]
        processed.append({
            **question,
            "id": question_id,
            "options": options,
        })
    return processed, id_map


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None


def _find_option(processed_questions, question_id, option_id) -> Optional[Dict[str, Any]]:
    for question in processed_questions:
        if str(question["id"]) != str(question_id):
            continue
        for option in question["options"]:
            if str(option["id"]) == str(option_id):
                return option
        logger.warning(
            f"Rule option {option_id} not found in question {question_id}; "
            f"available: {[o['id'] for o in question['options']]}"
        )
        return None
    return None


def process_rules(
    rules: List[Dict[str, Any]],
    processed_questions: List[Dict[str, Any]],
    id_map: Dict[str, str],
    prefix: str,
) -> List[Dict[str, Any]]:
    processed = []
    for rule in rules or []:
        conditions = []
        for condition in rule.get("conditions") or []:
            question_id = condition.get("question_id")
            option_id = condition.get("option_id")
            final_question_id = id_map.get(question_id, question_id)
            final_option_id = id_map.get(option_id, option_id)

            if option_id not in id_map and option_id:
                match = _find_option(processed_questions, final_question_id, option_id)
                if match is not None:
                    final_option_id = match["id"]

            conditions.append({
                "question_id": _optional_str(final_question_id),
                "option_id": _optional_str(final_option_id),
            })

        processed.append({
            **rule,
            "id": _resolve_id(rule.get("id"), {}, prefix),
            "conditions": conditions,
            "assign_collection": _optional_str(rule.get("assign_collection")),
        })
    return processed


def normalize_quiz_content(
    questions: List[Dict[str, Any]],
    rules: List[Dict[str, Any]],
    prefix: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Questions and rules with every temporary id replaced consistently"""
    prefix = prefix or settings.TEMP_ID_PREFIX
    processed_questions, id_map = process_questions(questions, prefix)
    processed_rules = process_rules(rules, processed_questions, id_map, prefix)
    if id_map:
        logger.info(f"Replaced {len(id_map)} temporary ids in quiz content")
    return processed_questions, processed_rules
