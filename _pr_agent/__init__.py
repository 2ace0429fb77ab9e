# PR Agent - Pull Request Analysis & Consolidation Package
#
# This package contains the staged pipeline that analyzes open pull
# requests on a GitHub repository and consolidates groups of related PRs.
# Stages live in their own files following the one-function-per-file
# pattern; the risk analyzers are standalone calculators the stages call.
#
# The pipeline is driven by cli.py. It reads from the GitHub REST API,
# shells out to git/gh for local merge checks, writes Markdown reports to
# OUTPUT_DIR, and can write back to GitHub (comments, reviews, closes).
#
# Stage flow:
#   1. Fetch Pull Requests -> 2. Analyze Pull Requests
#   -> 3. Select Strategy -> 4. Build Consolidation Plan
#   -> 5. Write Report -> 6. Execute Consolidation
