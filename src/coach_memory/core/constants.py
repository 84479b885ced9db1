"""Tuning constants for retrieval, consolidation and compaction.

These are the defaults behind the nested settings blocks in
``coach_memory.core.config``; override them through the environment rather
than editing this module.
"""

# Embeddings
EMBEDDING_DIMENSIONS = 1536
EMBEDDING_MODEL_DEFAULT = "voyage-large-2"

# Retrieval
MEMORY_SIMILARITY_THRESHOLD = 0.6
MEMORY_LIMIT_PER_QUERY = 5
MAX_FINAL_MEMORIES = 10
MIN_RETRIEVAL_CONFIDENCE = 0.5
MAX_SYNTHESIZED_QUERIES = 5
MIN_SEED_QUESTIONS = 3
RETRIEVAL_TIMEOUT_SECONDS = 15.0

# Tier windows, in days since last access
HOT_TIER_DAYS = 7
WARM_TIER_DAYS = 30

# Sufficiency
MIN_HOT_RESULTS = 3
MIN_SIMILARITY_FOR_ENOUGH = 0.7
MIN_TAG_DIVERSITY = 2

# Fusion
MRR_TIE_EPSILON = 0.01

# Duplicate detection
DUPLICATE_SIMILARITY_THRESHOLD = 0.85
TEXT_SIMILARITY_THRESHOLD = 0.4
DUPLICATE_SEARCH_LIMIT = 5
CORROBORATION_BOOST = 0.1

# Contradictions
CONTRADICTION_SIMILARITY_THRESHOLD = 0.7
CONTRADICTION_SIMILARITY_CEILING = 0.95
CONTRADICTION_PAIR_LIMIT = 20

# Compaction
LOW_IMPORTANCE_THRESHOLD = 0.3
MIN_AGE_DAYS = 7
COMPACTION_BATCH_SIZE = 100
MAX_USERS_PER_RUN = 50
RESCORE_BATCH_SIZE = 10
RESCORE_CONCURRENCY = 10
DELETE_BELOW = 0.2
COMPRESS_BELOW = 0.4
STALE_ACCESS_DAYS = 30
STALE_IMPORTANCE_THRESHOLD = 0.5
LOW_CONFIDENCE_THRESHOLD = 0.4
COMPACTION_LLM_TIMEOUT_SECONDS = 60.0

# Extraction
MIN_EXTRACTED_CONFIDENCE = 0.3

# Scheduled compaction (application layer)
NIGHTLY_COMPACTION_HOUR = 3
NIGHTLY_COMPACTION_MINUTE = 0
