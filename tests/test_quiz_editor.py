import logging
import uuid

from app.services.quiz_editor import normalize_quiz_content


def is_uuid(value):
    try:
        uuid.UUID(value)
        return True
    except (TypeError, ValueError):
        return False


def question(qid, *options, qtype="multiple-choice"):
    return {
        "id": qid,
        "type": qtype,
        "question_text": f"Question {qid}",
        "options": [{"id": oid, "text": f"Option {oid}", "assign_collection": None} for oid in options],
    }


def test_temporary_ids_are_replaced_and_rules_follow():
    questions = [question("temp_q1", "temp_o1", "temp_o2")]
    rules = [{
        "id": "temp_r1",
        "conditions": [{"question_id": "temp_q1", "option_id": "temp_o2"}],
        "assign_collection": "col-1",
    }]

    processed, processed_rules = normalize_quiz_content(questions, rules)

    new_question = processed[0]
    assert is_uuid(new_question["id"])
    assert all(is_uuid(option["id"]) for option in new_question["options"])
    condition = processed_rules[0]["conditions"][0]
    assert condition["question_id"] == new_question["id"]
    assert condition["option_id"] == new_question["options"][1]["id"]
    assert is_uuid(processed_rules[0]["id"])
    assert processed_rules[0]["assign_collection"] == "col-1"


def test_real_ids_are_kept():
    questions = [question("q-real", "o-real")]
    rules = [{
        "id": "r-real",
        "conditions": [{"question_id": "q-real", "option_id": "o-real"}],
        "assign_collection": None,
    }]

    processed, processed_rules = normalize_quiz_content(questions, rules)

    assert processed[0]["id"] == "q-real"
    assert processed[0]["options"][0]["id"] == "o-real"
    assert processed_rules[0]["id"] == "r-real"
    assert processed_rules[0]["conditions"] == [{"question_id": "q-real", "option_id": "o-real"}]
    assert processed_rules[0]["assign_collection"] is None


def test_new_question_with_existing_option_resolves_structurally():
    questions = [question("temp_q", "o-kept")]
    rules = [{
        "id": "r",
        "conditions": [{"question_id": "temp_q", "option_id": "o-kept"}],
        "assign_collection": "c",
    }]

    processed, processed_rules = normalize_quiz_content(questions, rules)

    assert processed_rules[0]["conditions"][0] == {
        "question_id": processed[0]["id"],
        "option_id": "o-kept",
    }


def test_unknown_option_reference_is_left_alone(caplog):
    caplog.set_level(logging.WARNING)
    questions = [question("q", "o1")]
    rules = [{
        "id": "r",
        "conditions": [{"question_id": "q", "option_id": "o-missing"}],
        "assign_collection": "c",
    }]

    _, processed_rules = normalize_quiz_content(questions, rules)

    assert processed_rules[0]["conditions"][0]["option_id"] == "o-missing"
    assert "not found in question" in caplog.text


def test_missing_ids_are_generated():
    questions = [{"type": "text", "question_text": "Tell us", "options": []}]
    rules = [{"conditions": [], "assign_collection": "c"}]

    processed, processed_rules = normalize_quiz_content(questions, rules)

    assert is_uuid(processed[0]["id"])
    assert is_uuid(processed_rules[0]["id"])


def test_custom_prefix():
    processed, _ = normalize_quiz_content([question("new-1", "keep_me")], [], prefix="new-")
    assert processed[0]["id"] != "new-1"
    assert processed[0]["options"][0]["id"] == "keep_me"
