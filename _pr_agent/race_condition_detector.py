"""
Race Condition Detector — PR Agent

PURPOSE:
    Flag patches that look like they introduce race conditions in the four
    places they usually appear in a React/Next.js app backed by a document
    database: form submissions, client state updates, async effects, and
    database writes.

CALLED BY:
    pr_auto_reviewer.py

DESIGN DECISIONS:
    - Every check is a substring test against the raw unified diff. It only
      sees the changed hunks, so "missing" safeguards can be false positives
      when the safeguard lives in unchanged lines. The findings are review
      prompts, not verdicts.

RISK FORMULA:
    High   if total issues >= 5 or database issues >= 2
    Medium if total issues >= 2 or database issues >= 1
    Low    otherwise
"""

import logging

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = (".tsx", ".jsx", ".ts", ".js")
STATE_PATH_MARKERS = ["/store", "useReducer", "useState", "context", "redux", "zustand"]
ASYNC_MARKERS = ["async ", "Promise", "then(", "catch(", "await "]
DB_PATH_MARKERS = ["/services", "/db/", "/database", "model", "appwrite"]
DB_WRITE_MARKERS = ["update", "insert", "delete", "create", "remove"]
DB_TRANSACTION_MARKERS = ["transaction", "atomic", "lock"]


def detect_race_conditions(pr: dict) -> dict:
    """
    Analyze a PR's patches for potential race conditions.

    Returns:
        dict with keys 'form_submission_issues', 'state_management_issues',
        'async_operation_issues', 'database_transaction_issues' (lists of
        "path: description" strings) and 'overall_risk'.
    """
    logger.info("Analyzing race conditions for PR #%s", pr["number"])

    form_issues = detect_form_submission_issues(pr)
    state_issues = detect_state_management_issues(pr)
    async_issues = detect_async_operation_issues(pr)
    db_issues = detect_database_transaction_issues(pr)

    return {
        "form_submission_issues": form_issues,
        "state_management_issues": state_issues,
        "async_operation_issues": async_issues,
        "database_transaction_issues": db_issues,
        "overall_risk": _risk_from_counts(
            len(form_issues) + len(state_issues) + len(async_issues) + len(db_issues),
            len(db_issues),
        ),
    }


def detect_form_submission_issues(pr: dict) -> list:
    issues = []

    for file in pr.get("files") or []:
        path = file["path"]
        if not (("/form" in path or "actions" in path) and path.endswith(SCRIPT_EXTENSIONS)):
            continue
        patch = file.get("patch")
        if not patch:
            continue

        has_form_state = "useState" in patch or "FormState" in patch or "useActionState" in patch
        has_loading_state = "isLoading" in patch or "pending" in patch or "useFormStatus" in patch
        has_submit_handler = "onSubmit" in patch or "handleSubmit" in patch or "formAction" in patch

        if has_submit_handler and not has_loading_state:
            issues.append(f"{path}: Form submission without loading state")

        if has_form_state and "reset" not in patch and "setState" not in patch:
            issues.append(f"{path}: Form state not properly reset after submission")

        if has_submit_handler and "disabled=" not in patch:
            issues.append(f"{path}: Form submission not disabled during processing")

    return issues


def detect_state_management_issues(pr: dict) -> list:
    issues = []

    for file in pr.get("files") or []:
        path = file["path"]
        if not any(marker in path for marker in STATE_PATH_MARKERS):
            continue
        patch = file.get("patch")
        if not patch:
            continue

        updates_state = "setState" in patch or "dispatch" in patch

        if (
            updates_state
            and "useCallback" not in patch
            and "debounce" not in patch
            and "throttle" not in patch
        ):
            issues.append(f"{path}: Potential concurrent state updates without debounce/throttle")

        if (
            "props" in patch
            and "setState" in patch
            and "useEffect" not in patch
            and "useMemo" not in patch
        ):
            issues.append(f"{path}: State derived from props without proper effects or memoization")

        if ("for (" in patch or "forEach" in patch) and updates_state:
            issues.append(f"{path}: Setting state in loops can cause race conditions")

    return issues


def detect_async_operation_issues(pr: dict) -> list:
    issues = []

    for file in pr.get("files") or []:
        patch = file.get("patch")
        if not patch or not any(marker in patch for marker in ASYNC_MARKERS):
            continue
        path = file["path"]

        if (
            ("fetch(" in patch or "axios" in patch)
            and "useEffect" in patch
            and "abortController" not in patch
            and "return () =>" not in patch
        ):
            issues.append(f"{path}: Async operations without cleanup in useEffect")

        if patch.count("fetch(") > 1 and "useCallback" not in patch and "useRef" not in patch:
            issues.append(f"{path}: Multiple fetch calls could race")

        if "addEventListener" in patch and "removeEventListener" not in patch:
            issues.append(f"{path}: Event listeners added without removal")

    return issues


def detect_database_transaction_issues(pr: dict) -> list:
    issues = []

    for file in pr.get("files") or []:
        path = file["path"]
        if not any(marker in path for marker in DB_PATH_MARKERS):
            continue
        patch = file.get("patch")
        if not patch:
            continue

        has_writes = any(marker in patch for marker in DB_WRITE_MARKERS)
        has_transaction = any(marker in patch for marker in DB_TRANSACTION_MARKERS)

        if has_writes and not has_transaction:
            issues.append(f"{path}: Database write operations without transaction handling")

            if ("if (" in patch or "if(" in patch) and (
                "exists" in patch or "find" in patch or "get" in patch
            ):
                issues.append(f"{path}: Existence check followed by write without transaction")

        if (
            ("map(" in patch or "forEach(" in patch)
            and has_writes
            and "try {" not in patch
            and "catch(" not in patch
        ):
            issues.append(f"{path}: Batch database operations without proper error handling")

    return issues


def _risk_from_counts(total_issues: int, db_issues: int) -> str:
    if total_issues >= 5 or db_issues >= 2:
        return "High"
    if total_issues >= 2 or db_issues >= 1:
        return "Medium"
    return "Low"
