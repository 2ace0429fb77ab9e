"""
Dependency Analyzer — PR Agent

PURPOSE:
    Read the package.json hunks of a PR and report dependency churn:
    additions, removals, version bumps, script edits, conflicting versions,
    libraries that duplicate each other's job, and missing peer deps.

CALLED BY:
    pr_auto_reviewer.py

DESIGN DECISIONS:
    - A dependency line is any diff line shaped like `+ "name": "version"`.
      That also matches non-dependency keys ("name", "version", scripts),
      which is acceptable for a review hint.
    - A version bump shows up as both a removed and an added version of the
      same package, so it is also reported as a version conflict (and the
      PR is rated High).

RISK FORMULA:
    High   if any version conflict or missing peer dependency
    Medium if duplicate libraries or more than 3 package.json findings
    Low    otherwise
"""

import logging
import re

logger = logging.getLogger(__name__)

ADDED_DEPENDENCY = re.compile(r'^\+\s*"([^"]+)":\s*"([^"]+)"', re.MULTILINE)
REMOVED_DEPENDENCY = re.compile(r'^-\s*"([^"]+)":\s*"([^"]+)"', re.MULTILINE)
ANY_DEPENDENCY = re.compile(r'[+-]\s*"([^"]+)":\s*"([^"]+)"')
ADDED_ANYWHERE = re.compile(r'\+\s*"([^"]+)":\s*"([^"]+)"')

DUPLICATE_LIBRARY_GROUPS = [
    ["react", "preact", "inferno"],
    ["redux", "mobx", "zustand", "recoil", "jotai"],
    ["styled-components", "emotion", "@stitches", "styled-jsx"],
    ["axios", "fetch", "superagent", "got", "request"],
    ["formik", "react-hook-form", "redux-form", "final-form"],
    ["react-router", "next/router", "@tanstack/router"],
    ["jest", "mocha", "vitest", "ava"],
    ["moment", "date-fns", "dayjs", "luxon"],
]

KNOWN_PEER_DEPENDENCIES = {
    "@emotion/react": ["@emotion/styled"],
    "react-redux": ["redux"],
    "@mui/material": ["@emotion/react", "@emotion/styled"],
    "react-router-dom": ["react-router"],
    "@typescript-eslint/eslint-plugin": ["@typescript-eslint/parser"],
    "styled-components": ["react"],
    "next": ["react", "react-dom"],
    "eslint-config-next": ["eslint"],
    "@tanstack/react-query": ["react"],
    "formik": ["react"],
}


def check_dependency_conflicts(pr: dict) -> dict:
    """
    Analyze a PR's package.json changes.

    Returns:
        dict with keys 'package_json_changes', 'version_conflicts',
        'duplicate_libraries', 'missing_peer_dependencies' (lists of
        strings) and 'overall_risk'.
    """
    logger.info("Checking dependency conflicts for PR #%s", pr["number"])

    package_changes = analyze_package_json_changes(pr)
    version_conflicts = detect_version_conflicts(pr)
    duplicates = find_duplicate_libraries(pr)
    missing_peers = check_missing_peer_dependencies(pr)

    if version_conflicts or missing_peers:
        overall_risk = "High"
    elif duplicates or len(package_changes) > 3:
        overall_risk = "Medium"
    else:
        overall_risk = "Low"

    return {
        "package_json_changes": package_changes,
        "version_conflicts": version_conflicts,
        "duplicate_libraries": duplicates,
        "missing_peer_dependencies": missing_peers,
        "overall_risk": overall_risk,
    }


def analyze_package_json_changes(pr: dict) -> list:
    changes = []

    for file in _package_files(pr):
        path = file["path"]
        patch = file["patch"]

        added = extract_added_dependencies(patch)
        if added:
            changes.append(f"{path}: Added dependencies: {', '.join(added)}")

        removed = extract_removed_dependencies(patch)
        if removed:
            changes.append(f"{path}: Removed dependencies: {', '.join(removed)}")

        versions = extract_version_changes(patch)
        if versions:
            changes.append(f"{path}: Changed versions: {', '.join(versions)}")

        if '"scripts"' in patch:
            changes.append(f"{path}: Modified npm scripts")

    return changes


def extract_added_dependencies(patch: str) -> list:
    return [f"{name}@{version}" for name, version in ADDED_DEPENDENCY.findall(patch)]


def extract_removed_dependencies(patch: str) -> list:
    return [f"{name}@{version}" for name, version in REMOVED_DEPENDENCY.findall(patch)]


def extract_version_changes(patch: str) -> list:
    """Adjacent '-' then '+' lines for the same package: 'name: old → new'."""
    changes = []
    lines = patch.split("\n")

    for current, following in zip(lines, lines[1:]):
        if not (current.startswith("-") and following.startswith("+")):
            continue
        removed = REMOVED_DEPENDENCY.match(current)
        added = ADDED_DEPENDENCY.match(following)
        if removed and added and removed.group(1) == added.group(1):
            changes.append(f"{added.group(1)}: {removed.group(2)} → {added.group(2)}")

    return changes


def detect_version_conflicts(pr: dict) -> list:
    versions_by_name = {}

    for file in _package_files(pr):
        for name, version in ANY_DEPENDENCY.findall(file["patch"]):
            versions = versions_by_name.setdefault(name, [])
            if version not in versions:
                versions.append(version)

    return [
        f"{name}: Multiple versions specified ({', '.join(versions)})"
        for name, versions in versions_by_name.items()
        if len(versions) > 1
    ]


def find_duplicate_libraries(pr: dict) -> list:
    all_deps = set()
    for file in _package_files(pr):
        all_deps.update(name for name, _ in ANY_DEPENDENCY.findall(file["patch"]))

    duplicates = []
    for group in DUPLICATE_LIBRARY_GROUPS:
        found = [
            lib
            for lib in group
            if any(dep == lib or dep.startswith(f"{lib}/") for dep in all_deps)
        ]
        if len(found) > 1:
            duplicates.append(f"Duplicate libraries: {', '.join(found)}")

    return duplicates


def check_missing_peer_dependencies(pr: dict) -> list:
    added = []
    for file in _package_files(pr):
        for name, _ in ADDED_ANYWHERE.findall(file["patch"]):
            if name not in added:
                added.append(name)

    missing = []
    for dep in added:
        for peer in KNOWN_PEER_DEPENDENCIES.get(dep, []):
            if peer not in added:
                missing.append(f"{dep} requires peer dependency {peer}")

    return missing


def _package_files(pr: dict) -> list:
    """package.json files that carry a patch."""
    return [
        f
        for f in pr.get("files") or []
        if f["path"].endswith("package.json") and f.get("patch")
    ]
