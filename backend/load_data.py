"""
Data Loader Script - Loads test definitions into the platform via API.

Reads a JSON file with a list of test definitions and creates each one
through POST /api/tests as an admin. Each entry looks like:

    {
        "course_id": "...",
        "title": "Python Basics",
        "type": "multiple_choice",
        "passing_score": 70,
        "questions": [
            {"text": "2 + 2 = ?", "points": 1,
             "options": [{"text": "4", "correct": true}, {"text": "5"}]}
        ]
    }

Usage:
    python load_data.py tests.json                          # Uses default URL
    python load_data.py tests.json http://localhost:8000    # Custom API URL
"""

import json
import os
import sys

import httpx


def build_payload(definition: dict) -> dict:
    """Transform one loose test definition into the POST /api/tests body."""
    test_type = definition.get("test_type") or definition.get("type", "multiple_choice")
    questions = []
    for q in definition.get("questions", []):
        question_type = q.get("question_type") or q.get("type") or test_type
        question = {
            "question_text": q.get("question_text") or q.get("text"),
            "question_type": question_type,
            "points": q.get("points", 1),
        }
        if question_type == "multiple_choice":
            question["options"] = [
                {
                    "option_text": o.get("option_text") or o.get("text"),
                    "is_correct": bool(o.get("is_correct", o.get("correct", False))),
                }
                for o in q.get("options", [])
            ]
        questions.append(question)

    payload = {
        "course_id": definition["course_id"],
        "title": definition.get("title", "").strip(),
        "description": definition.get("description"),
        "test_type": test_type,
        "questions": questions,
    }
    for key in ("passing_score", "time_limit_minutes", "max_attempts"):
        if definition.get(key) is not None:
            payload[key] = definition[key]
    return payload


def load_definitions(client: httpx.Client, definitions: list, admin_id: str) -> list:
    """POST every definition; returns the created test ids."""
    headers = {"X-User-Id": admin_id, "X-User-Role": "admin"}
    created = []
    for definition in definitions:
        resp = client.post("/api/tests", json=build_payload(definition), headers=headers)
        resp.raise_for_status()
        test = resp.json()["test"]
        print(f"  Created: {test['title']} ({test['id']})")
        created.append(test["id"])
    return created


def main():
    if len(sys.argv) < 2:
        print("Usage: python load_data.py <definitions.json> [api_url]")
        sys.exit(1)

    data_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")
    admin_id = os.getenv("ADMIN_USER_ID", "")

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)
    if not admin_id:
        print("Error: ADMIN_USER_ID must be set to an existing admin user id")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, 'r') as f:
        definitions = json.load(f)

    print(f"Creating {len(definitions)} tests at {api_url}")
    try:
        with httpx.Client(base_url=api_url, timeout=30.0) as client:
            created = load_definitions(client, definitions, admin_id)
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error {e.response.status_code}: {e.response.text}")
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\n{'=' * 50}")
    print("Load Results:")
    print(f"  Tests created: {len(created)}")
    print(f"{'=' * 50}")


if __name__ == "__main__":
    main()
