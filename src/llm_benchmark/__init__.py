"""
LLM Benchmark Toolkit

A toolkit for benchmarking language-model providers against a shared suite of
test cases and ranking them by accuracy, cost, latency and domain expertise.
"""

__version__ = "0.3.0"
__author__ = "LLM Benchmark Toolkit Team"
