"""
Consolidation Map — PR Agent

PURPOSE:
    Plan the consolidation of a larger set of related PRs. Instead of
    merging everything into one branch at once, PRs are grouped into
    "integration points": clusters that look mutually dependent. Each
    point becomes an intermediate branch, points are ordered so a point is
    built after the points it requires, and the newest PR closes the chain.

CALLED BY:
    stage_4_build_consolidation_plan.py for the consolidation-map strategy.

DEPENDENCY HEURISTICS (edge from -> to, confidence):
    - builds-on      0.7  later PR modifies a file an earlier PR modified
    - depends-on     0.9  a commit message of `from` mentions #to
    - depends-on     0.8  the description of `from` mentions #to
    - builds-on      0.6  head branch of `from` contains the other head
                          branch name or PR number
    - conflicts-with 0.5  both PRs touch the same file
    Duplicate edges (same from, to, type) keep the highest confidence and
    the union of files. Self edges are never added.

INTEGRATION POINTS:
    1. BFS from each unassigned PR over builds-on/depends-on edges with
       confidence >= 0.7, capped at MAX_INTEGRATION_POINT_SIZE members.
    2. Remaining PRs are chunked by MAX_INTEGRATION_POINT_SIZE; chunks
       smaller than MIN_INTEGRATION_POINT_SIZE are left over.
    3. Point A "requires" point B when a PR in A builds on / depends on a
       PR in B.
    4. Leftovers form a final point.
    5. Points are ordered required-first. A cycle keeps the creation order.
"""

import logging
import re
from collections import deque

from _pr_agent import config
from _pr_agent.github_api import created_time

logger = logging.getLogger(__name__)

PR_REFERENCE = re.compile(r"#(\d+)")
STRONG_TYPES = ("builds-on", "depends-on")

TEST_REQUIREMENT_MARKERS = [
    ("/api/", "api"),
    ("/components/", "ui"),
    ("/services/", "service"),
    ("/auth/", "auth"),
    ("/test/", "test"),
]


def create_consolidation_map(prs: list) -> dict:
    """
    Build the full consolidation map for a set of PRs.

    Returns:
        dict with keys:
            - 'integration_points' (list[dict]): id, prs, required_before,
              description, test_requirements; in build order
            - 'dependencies' (list[dict]): from_pr, to_pr, dependency_type,
              files, confidence, reason
            - 'final_pr' (int or None): the newest PR
            - 'visual_map' (str): Mermaid diagram in a fenced block
            - 'implementation_plan' (str): Markdown steps
    """
    sorted_prs = sorted(prs, key=created_time)

    dependencies = detect_dependencies(sorted_prs)
    integration_points = identify_integration_points(sorted_prs, dependencies)
    final_pr = sorted_prs[-1]["number"] if sorted_prs else None

    logger.info(
        "Consolidation map: %d dependencies, %d integration points",
        len(dependencies),
        len(integration_points),
    )

    return {
        "integration_points": integration_points,
        "dependencies": dependencies,
        "final_pr": final_pr,
        "visual_map": generate_visual_map(sorted_prs, dependencies, integration_points, final_pr),
        "implementation_plan": generate_implementation_plan(sorted_prs, integration_points, final_pr),
    }


def detect_dependencies(prs: list) -> list:
    """Infer dependency edges between PRs. `prs` should be oldest first."""
    dependencies = []
    numbers = {pr["number"] for pr in prs}

    def add_dependency(from_pr, to_pr, dependency_type, files, confidence, reason):
        if from_pr == to_pr:
            return

        for existing in dependencies:
            if (
                existing["from_pr"] == from_pr
                and existing["to_pr"] == to_pr
                and existing["dependency_type"] == dependency_type
            ):
                if confidence > existing["confidence"]:
                    existing["confidence"] = confidence
                    existing["reason"] = reason
                for path in files:
                    if path not in existing["files"]:
                        existing["files"].append(path)
                return

        dependencies.append({
            "from_pr": from_pr,
            "to_pr": to_pr,
            "dependency_type": dependency_type,
            "files": list(files),
            "confidence": confidence,
            "reason": reason,
        })

    # ----- STEP 1: Sequential modifications of the same file
    modifications = {}
    for pr in prs:
        created = created_time(pr)
        for file in pr.get("files") or []:
            modifications.setdefault(file["path"], []).append((created, pr["number"]))

    for path, touches in modifications.items():
        touches.sort(key=lambda touch: touch[0])
        for (_, earlier), (_, later) in zip(touches, touches[1:]):
            add_dependency(later, earlier, "builds-on", [path], 0.7, f"Sequential modification to {path}")

    # ----- STEP 2: Commit messages referencing other PRs
    for pr in prs:
        for commit in pr.get("commits") or []:
            for ref in PR_REFERENCE.findall(commit.get("message") or ""):
                referenced = int(ref)
                if referenced in numbers:
                    add_dependency(
                        pr["number"], referenced, "depends-on", [], 0.9,
                        f"Commit message references PR #{referenced}",
                    )

    # ----- STEP 3: Descriptions referencing other PRs
    for pr in prs:
        for ref in PR_REFERENCE.findall(pr.get("body") or ""):
            referenced = int(ref)
            if referenced in numbers:
                add_dependency(
                    pr["number"], referenced, "depends-on", [], 0.8,
                    f"PR description references PR #{referenced}",
                )

    # ----- STEP 4: Branch names
    for pr in prs:
        head = pr.get("head_ref") or ""
        for other in prs:
            if other["number"] == pr["number"]:
                continue
            other_head = other.get("head_ref") or ""
            if (other_head and other_head in head) or str(other["number"]) in head:
                add_dependency(
                    pr["number"], other["number"], "builds-on", [], 0.6,
                    "Branch name suggests dependency",
                )

    # ----- STEP 5: Overlapping files
    for pr1 in prs:
        for pr2 in prs:
            if pr1["number"] == pr2["number"]:
                continue
            paths2 = {f["path"] for f in pr2.get("files") or []}
            overlapping = [f["path"] for f in pr1.get("files") or [] if f["path"] in paths2]
            if overlapping:
                more = ", ..." if len(overlapping) > 3 else ""
                add_dependency(
                    pr1["number"], pr2["number"], "conflicts-with", overlapping, 0.5,
                    f"Modified same files: {', '.join(overlapping[:3])}{more}",
                )

    return dependencies


def identify_integration_points(
    prs: list,
    dependencies: list,
    min_size: int = None,
    max_size: int = None,
) -> list:
    """Group PRs into integration points and return them in build order."""
    min_size = min_size if min_size is not None else config.MIN_INTEGRATION_POINT_SIZE
    max_size = max_size if max_size is not None else config.MAX_INTEGRATION_POINT_SIZE

    points = []
    assigned = set()

    def add_point(members, description=None):
        points.append({
            "id": f"integration-point-{len(points) + 1}",
            "prs": members,
            "required_before": [],
            "description": description or _describe_point(members, prs),
            "test_requirements": _determine_test_requirements(members, prs),
        })
        assigned.update(members)

    # -----------------------------------------------------------------------
    # STEP 1: Strongly connected clusters
    # -----------------------------------------------------------------------

    for pr in prs:
        if pr["number"] in assigned:
            continue
        # A PR belongs to at most one point
        connected = [
            n for n in _find_connected_prs(pr["number"], dependencies) if n not in assigned
        ]
        if len(connected) <= 1:
            continue
        add_point(connected[:max_size])

    # -----------------------------------------------------------------------
    # STEP 2: Chunk the remaining PRs
    # -----------------------------------------------------------------------

    remaining = [pr["number"] for pr in prs if pr["number"] not in assigned]
    for start in range(0, len(remaining), max_size):
        chunk = remaining[start:start + max_size]
        if len(chunk) >= min_size:
            add_point(chunk)

    # -----------------------------------------------------------------------
    # STEP 3: Requirements between points
    # -----------------------------------------------------------------------

    strong_edges = {
        (dep["from_pr"], dep["to_pr"])
        for dep in dependencies
        if dep["dependency_type"] in STRONG_TYPES
    }
    for point_a in points:
        for point_b in points:
            if point_a is point_b:
                continue
            if any((a, b) in strong_edges for a in point_a["prs"] for b in point_b["prs"]):
                if point_b["id"] not in point_a["required_before"]:
                    point_a["required_before"].append(point_b["id"])

    # -----------------------------------------------------------------------
    # STEP 4: Leftovers become the final point
    # -----------------------------------------------------------------------

    leftovers = [pr["number"] for pr in prs if pr["number"] not in assigned]
    if leftovers:
        add_point(leftovers, "Final integration point for remaining PRs")

    return _topological_sort(points)


def generate_visual_map(prs: list, dependencies: list, integration_points: list, final_pr) -> str:
    """Mermaid `graph TD` diagram: PRs -> integration points -> final PR."""
    lines = ["```mermaid", "graph TD"]

    for pr in prs:
        title = pr["title"] if len(pr["title"]) <= 30 else pr["title"][:27] + "..."
        lines.append(f"    PR{pr['number']}[PR #{pr['number']}: {title}]")

    for point in integration_points:
        lines.append(f"    {point['id']}[{point['description']}]")

    if final_pr is not None:
        lines.append("    Final[Final Consolidated PR]")

    for point in integration_points:
        for number in point["prs"]:
            lines.append(f"    PR{number} --> {point['id']}")

    for point in integration_points:
        for required_id in point["required_before"]:
            lines.append(f"    {required_id} --> {point['id']}")

    if final_pr is not None:
        for point in integration_points:
            lines.append(f"    {point['id']} --> Final")

    lines.append("")
    lines.append("    classDef pr fill:#ddf,stroke:#333,stroke-width:1px;")
    lines.append("    classDef integration fill:#ffd,stroke:#333,stroke-width:2px;")
    lines.append("    classDef final fill:#dfd,stroke:#333,stroke-width:3px;")
    lines.append("")

    for pr in prs:
        lines.append(f"    class PR{pr['number']} pr")
    for point in integration_points:
        lines.append(f"    class {point['id']} integration")
    if final_pr is not None:
        lines.append("    class Final final")

    lines.append("```")
    return "\n".join(lines)


def generate_implementation_plan(prs: list, integration_points: list, final_pr) -> str:
    """Numbered Markdown steps, one section per integration point."""
    created = {pr["number"]: created_time(pr) for pr in prs}
    lines = ["# Implementation Plan for PR Consolidation", ""]

    for index, point in enumerate(integration_points):
        lines.append(f"## {point['description']}")
        lines.append("")
        steps = []

        if index == 0:
            ordered = sorted(point["prs"], key=lambda n: created[n])
            steps.append(f"Start with PR #{ordered[0]} as base")
            steps.extend(f"Add changes from PR #{number}" for number in ordered[1:])
        else:
            steps.append(f"Start with branch `{integration_points[index - 1]['id']}`")
            steps.extend(f"Add changes from PR #{number}" for number in point["prs"])

        if point["test_requirements"]:
            steps.append(f"Run {', '.join(point['test_requirements'])} tests")
        steps.append(f"Create integration branch `{point['id']}`")

        lines.extend(f"{n}. {step}" for n, step in enumerate(steps, start=1))
        lines.append("")

    if final_pr is not None:
        lines.append("## Final Consolidation")
        lines.append("")
        if integration_points:
            steps = [
                f"Start with branch `{integration_points[-1]['id']}`",
                f"Add remaining changes from PR #{final_pr}",
            ]
        else:
            steps = [f"Start with PR #{final_pr}"]
        steps.extend([
            "Run full test suite",
            "Update documentation",
            "Create final PR with comprehensive description",
        ])
        lines.extend(f"{n}. {step}" for n, step in enumerate(steps, start=1))
        lines.append("")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _find_connected_prs(pr_number: int, dependencies: list) -> list:
    """BFS over strong (>= 0.7) builds-on/depends-on edges in either direction."""
    result = [pr_number]
    seen = {pr_number}
    queue = deque([pr_number])

    while queue:
        current = queue.popleft()
        for dep in dependencies:
            if dep["dependency_type"] not in STRONG_TYPES or dep["confidence"] < 0.7:
                continue
            if dep["from_pr"] == current:
                other = dep["to_pr"]
            elif dep["to_pr"] == current:
                other = dep["from_pr"]
            else:
                continue
            if other not in seen:
                seen.add(other)
                result.append(other)
                queue.append(other)

    return result


def _describe_point(members: list, prs: list) -> str:
    """Top three title keywords (longer than 3 chars) shared by the point's PRs."""
    titles = {pr["number"]: pr["title"] for pr in prs}

    keywords = []
    for number in members:
        for term in re.split(r"[ :]", titles.get(number, "")):
            term = term.lower()
            if len(term) > 3 and term not in keywords:
                keywords.append(term)

    counted = [
        (keyword, sum(1 for n in members if keyword in titles.get(n, "").lower()))
        for keyword in keywords
    ]
    counted.sort(key=lambda item: item[1], reverse=True)
    top = [keyword for keyword, _ in counted[:3]]

    if top:
        return f"Integration point for {', '.join(top)} changes"
    return f"Integration point {', '.join(str(n) for n in members)}"


def _determine_test_requirements(members: list, prs: list) -> list:
    paths = set()
    for pr in prs:
        if pr["number"] in members:
            paths.update(f["path"] for f in pr.get("files") or [])

    requirements = [
        requirement
        for marker, requirement in TEST_REQUIREMENT_MARKERS
        if any(marker in path for path in paths)
    ]
    if len(paths) > 10:
        requirements.append("integration")
    return requirements


def _topological_sort(points: list) -> list:
    """Order points so every point comes after the points it requires (Kahn)."""
    dependents = {point["id"]: [] for point in points}
    in_degree = {point["id"]: 0 for point in points}

    for point in points:
        for required_id in point["required_before"]:
            if required_id in dependents:
                dependents[required_id].append(point["id"])
                in_degree[point["id"]] += 1

    queue = deque(point["id"] for point in points if in_degree[point["id"]] == 0)
    ordered = []
    while queue:
        current = queue.popleft()
        ordered.append(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(ordered) != len(points):
        logger.warning("Cycle detected in integration point dependencies")
        return points

    by_id = {point["id"]: point for point in points}
    return [by_id[point_id] for point_id in ordered]
