"""
TenderQA - Question answering over uploaded tender documents

Upload tender PDFs, register questions, and answer every question against
every document through a hosted document-QA service. Answers are kept in
a flat JSON record document.
"""

__version__ = "1.0.0"
__author__ = "TenderQA"
