"""Persistence for experiments, test cases and results."""

from .models import Experiment, ExperimentResult, TestCase
from .store import ResultStore

__all__ = ["Experiment", "ExperimentResult", "ResultStore", "TestCase"]
