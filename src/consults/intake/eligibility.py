"""Shape validation for consult intake.

Answers are an opaque questionnaire payload, but they must at least be a JSON
object of named answers whose values are scalars, lists of scalars, or one
level of nested scalars. Anything else is rejected before storage is touched.
"""

import json

from consults.errors import InvalidIntake

_SCALARS = (str, int, float, bool, type(None))
MAX_ANSWERS = 200


def _is_scalar_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(v, _SCALARS) for v in value)


def _is_valid_answer(value) -> bool:
    if isinstance(value, _SCALARS) or _is_scalar_list(value):
        return True
    if isinstance(value, dict):
        return all(isinstance(k, str) and (isinstance(v, _SCALARS) or _is_scalar_list(v)) for k, v in value.items())
    return False


def parse_eligibility_answers(raw) -> dict:
    """Return the answers as a dict or raise ``InvalidIntake``."""
    if raw is None or raw == "":
        return {}

    answers = raw
    if isinstance(raw, str):
        try:
            answers = json.loads(raw)
        except json.JSONDecodeError:
            raise InvalidIntake({"eligibility_answers": ["Eligibility answers must be valid JSON"]}) from None

    if not isinstance(answers, dict):
        raise InvalidIntake({"eligibility_answers": ["Eligibility answers must be an object of named answers"]})
    if len(answers) > MAX_ANSWERS:
        raise InvalidIntake({"eligibility_answers": [f"At most {MAX_ANSWERS} answers are accepted"]})

    bad = [
        key
        for key, value in answers.items()
        if not isinstance(key, str) or not key.strip() or not _is_valid_answer(value)
    ]
    if bad:
        raise InvalidIntake({"eligibility_answers": [f"Unsupported answer shape for: {', '.join(map(str, bad))}"]})
    return answers


def validate_intake(business_id, customer_id, product_id, email, first_name, last_name, consult_fee=None) -> None:
    errors = {}
    if not business_id:
        errors["business_id"] = ["Business is required"]
    if not customer_id:
        errors["customer_id"] = ["Customer is required"]
    if not product_id:
        errors["product_id"] = ["Product is required"]
    if not email or "@" not in email:
        errors["email"] = ["A valid email is required"]
    if not first_name or not first_name.strip():
        errors["first_name"] = ["First name is required"]
    if not last_name or not last_name.strip():
        errors["last_name"] = ["Last name is required"]
    if consult_fee is not None and consult_fee < 0:
        errors["consult_fee"] = ["Consult fee cannot be negative"]
    if errors:
        raise InvalidIntake(errors)
