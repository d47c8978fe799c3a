import pytest

from quizgen.models.question import Question

REPLACEMENT = {
    "question": "Who wrote most of the Psalms?",
    "options": {"A": "David", "B": "Solomon", "C": "Moses", "D": "Asaph"},
    "correct_answer": "A",
    "explanation": "Many psalms are attributed to David.",
    "biblical_reference": "Psalms 23:1",
}


@pytest.fixture()
def quiz(client, generator, headers, quiz_body, sample_questions):
    generator.queue((200, sample_questions))
    response = client.post("/educator/quiz/create", headers=headers, json=quiz_body())
    assert response.status_code == 201, response.text
    return response.json()


def _replace(client, headers, quiz, question, json=None):
    return client.post(
        f"/educator/quiz/{quiz['quiz_id']}/questions/{question['id']}/replace",
        headers=headers,
        json=json,
    )


def test_replacement_round_trip(client, generator, headers, quiz, db):
    target = quiz["questions"][1]

    response = _replace(client, headers, quiz, target, json={"difficulty": "hard", "book": "Psalms"})
    assert response.status_code == 202, response.text
    accepted = response.json()
    assert accepted["job_id"].startswith("replace-")
    assert accepted["question_id"] == target["id"]
    assert accepted["estimated_time"] == 15

    sent = generator.requests[-1]
    assert sent["jobId"] == accepted["job_id"]
    assert sent["callbackUrl"] == "http://quiz.test/educator/quiz/webhook-callback-replace"
    assert sent["questionIdToReplace"] == target["id"]
    assert sent["questionCount"] == 1
    assert sent["isReplacement"] is True
    assert sent["difficulty"] == "hard"
    assert sent["books"] == ["Psalms"]

    callback = client.post(
        "/educator/quiz/webhook-callback-replace",
        json={"jobId": accepted["job_id"], "status": "success", "questionsData": [REPLACEMENT]},
    )
    assert callback.status_code == 200, callback.text
    assert callback.json()["status"] == "completed"

    row = db.get(Question, target["id"])
    assert row.question_text == "Who wrote most of the Psalms?"
    assert row.book == "Psalms"
    assert row.correct_answer == "a"
    assert row.order_index == target["order_index"]

    polled = client.get("/educator/quiz/poll-status", headers=headers, params={"job_id": accepted["job_id"]}).json()
    assert polled["status"] == "completed"
    assert polled["questions_count"] == 1


def test_replacement_without_body_uses_quiz_configuration(client, generator, headers, quiz):
    response = _replace(client, headers, quiz, quiz["questions"][0])
    assert response.status_code == 202

    sent = generator.requests[-1]
    assert sent["difficulty"] == "easy"
    assert sent["books"] == ["1 Corinthians"]
    assert sent["chapters"] == ["13"]


def test_replacement_rejects_invalid_question(client, headers, quiz, db):
    target = quiz["questions"][0]
    accepted = _replace(client, headers, quiz, target).json()

    client.post(
        "/educator/quiz/webhook-callback-replace",
        json={"jobId": accepted["job_id"], "status": "success", "questionsData": [{"question": "Half a question"}]},
    )

    polled = client.get("/educator/quiz/poll-status", headers=headers, params={"job_id": accepted["job_id"]}).json()
    assert polled["status"] == "failed"
    assert polled["error"] == "Invalid question data received"
    assert db.get(Question, target["id"]).question_text == target["question_text"]


def test_callbacks_must_match_job_kind(client, headers, quiz, quiz_body):
    replacement = _replace(client, headers, quiz, quiz["questions"][0]).json()
    wrong_endpoint = client.post(
        "/educator/quiz/webhook-callback",
        json={"jobId": replacement["job_id"], "status": "success", "questionsData": [REPLACEMENT]},
    )
    assert wrong_endpoint.status_code == 400
    assert wrong_endpoint.json()["details"]["expected_endpoint"] == "/educator/quiz/webhook-callback-replace"

    quiz_job = client.post(
        "/educator/quiz/create-async", headers=headers, json=quiz_body(title="Another quiz")
    ).json()
    wrong_endpoint = client.post(
        "/educator/quiz/webhook-callback-replace",
        json={"jobId": quiz_job["job_id"], "status": "success", "questionsData": [REPLACEMENT]},
    )
    assert wrong_endpoint.status_code == 400


def test_replacement_of_unknown_question(client, headers, quiz):
    response = _replace(client, headers, quiz, {"id": "no-such-question"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "QUESTION_NOT_FOUND"


def test_replacement_on_other_educators_quiz(client, make_headers, quiz):
    response = _replace(client, make_headers("educator-2"), quiz, quiz["questions"][0])
    assert response.status_code == 404
    assert response.json()["error_code"] == "QUIZ_NOT_FOUND"
