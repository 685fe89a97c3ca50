"""
================================================================================
StreamScout v1.0 - Search
================================================================================
Query resolution for the catalog: title corpus, fuzzy match index, typo
suggestions, franchise expansion, result cache, and batch availability.

Import from the submodules directly (e.g. search.pipeline.SearchPipeline).
================================================================================
"""
