"""
Common text utilities shared by extraction, caching and evidence providers.

Modules:
    - text_cleaner: Text and claim normalization, cache keys
    - claim_segmentation: Sentence and clause splitting of transcripts
"""
