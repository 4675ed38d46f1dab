"""Behavioral profiling engine.

Sub-modules:
- lexicon      – keyword, sentiment and formality word lists
- extractor    – interaction event -> feature record
- tier1        – keyword / sentiment / behavioral analyzers
- fusion       – confidence-weighted consensus
- validator    – Tier-2 trigger evaluation and provider calls
- typology     – MBTI and DISC derivation
- cultural     – Hofstede baseline blended with behavior
- suggestions  – benchmark-driven metric suggestions
- scoring      – performance scores and insights
"""
