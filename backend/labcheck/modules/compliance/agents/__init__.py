"""Compliance agents.

LLM-backed steps of the Compliance Engine:
  Matrix classifier  — sampled matrix + CEIRSA category (regex fallback)
  Analyses extractor — parameter / result / unit / method rows
  Judge              — verdict + cited sources from supplied regulatory context
"""
