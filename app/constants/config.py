"""
Application configuration constants.
Centralized thresholds for claim extraction, evidence aggregation and provider endpoints.
"""

import os

# ============================================================================
# CLAIM EXTRACTION SCORING
# ============================================================================

# Points awarded by each independent verifiability heuristic
SCORE_YEAR = 20
SCORE_NUMBER = 15
SCORE_NAMED_ENTITY = 25
SCORE_OWNERSHIP = 20
SCORE_DOMAIN_PATTERN = 25  # political / geographic / definitional
SCORE_COPULA = 20

# Score ceiling for a candidate claim
SCORE_MAX = 100

# ============================================================================
# EVIDENCE AGGREGATION
# ============================================================================

# Similarity above which an evidence item ENTAILS the claim
ENTAILMENT_THRESHOLD = 0.6

# Similarity below which a negating evidence item may CONTRADICT the claim
CONTRADICTION_MAX_SIMILARITY = 0.3

# Lower edge of the "misleading" middle band of mean similarity
MISLEADING_FLOOR = 0.3

# Confidence points added per classified (non-neutral) evidence item
RELATIONSHIP_BOOST = 10

# Confidence floor for a contradiction-driven FALSE verdict
FALSE_CONFIDENCE_FLOOR = 60

# Confidence ceiling for UNVERIFIED verdicts
UNVERIFIED_CONFIDENCE_CAP = 30

# Evidence items attached to a verification result
MAX_EVIDENCE_ITEMS = 5

# Negation / refutation vocabulary used for contradiction detection
CONTRADICTION_KEYWORDS = (
    "not",
    "never",
    "no",
    "incorrect",
    "wrong",
    "false",
    "debunked",
    "disproven",
    "contradicts",
    "disagrees",
    "different",
    "myth",
    "rather than",
    "instead",
)

# ============================================================================
# EXTERNAL PROVIDERS
# ============================================================================

GOOGLE_CSE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
GOOGLE_CSE_MAX_RESULTS = 3
GOOGLE_CSE_CALLS_PER_SECOND = 5

WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"
WIKIPEDIA_PAGE_URL = "https://en.wikipedia.org/wiki/{title}"
WIKIPEDIA_USER_AGENT = "ClaimWorker/1.0 (live fact-checking)"
WIKIPEDIA_MAX_TERMS = 3

LLM_TEMPERATURE = 0.0
LLM_MAX_TOKENS_VERDICT = 300

# Fact override table shipped with the worker
FACT_OVERRIDES_PATH = os.path.join(os.path.dirname(__file__), "fact_overrides.json")
