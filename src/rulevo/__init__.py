"""Evolutionary synthesis of rule diagrams."""

from .enums import BRANCH_EDGES, EdgeKind, MutationClass, NodeKind, TermKind
from .errors import (
    InvalidMutation,
    MalformedDiagram,
    MalformedProgram,
    NonTerminating,
    RulevoError,
)
from .registry import Predicate, PredicateRegistry
from .terms import (
    Constant,
    Fact,
    Free,
    Pattern,
    Reference,
    Term,
    const,
    fact,
    facts,
    free,
    ref,
    sort_facts,
)
from .snapshot import EMPTY_SNAPSHOT, RegisterSnapshot
from .diagram import Branch, Diagram, Leaf, Node
from .validator import DiagramValidator, construct, well_formed
from .builder import DiagramBuilder
from .executor import (
    DEFAULT_MAX_ROUNDS,
    DiagramExecutor,
    Evaluation,
    evaluate,
    propagate,
    snapshot_sets,
)
from .problem import Example, ProblemStatement, blank_diagram, collect_values
from .evaluator import ExampleEvaluator, ScoreCard, fact_agreement
from .mutation import (
    BindConstant,
    CollapsePassThrough,
    DuplicateNode,
    Graft,
    MergeNodes,
    MutationSpec,
    RedirectEdge,
    ReplaceConstant,
    ReplacePredicate,
    ReplaceTerm,
    RetargetRegister,
    RewriteFreeRegister,
    SpliceEdge,
    UnbindConstant,
)
from .mutator import DiagramMutator, apply
from .analysis import Analysis, ArmCombiner, DiagramAnalyzer, candidate_mutations, same_pattern
from .weights import MutationWeights, default_weights
from .config import FAST_CONFIG, STANDARD_CONFIG, THOROUGH_CONFIG, EvolutionConfig
from .notation import format_diagram, parse_diagram
from .evolver import DiagramEvolver, Individual
from .supervised import (
    DiagramFeatureExtractor,
    DiagramFitnessModel,
    DiagramSupervisedGuide,
)
from .demos import example_copy_rule_search, example_next_board

__all__ = [
    "BRANCH_EDGES",
    "EdgeKind",
    "MutationClass",
    "NodeKind",
    "TermKind",
    "InvalidMutation",
    "MalformedDiagram",
    "MalformedProgram",
    "NonTerminating",
    "RulevoError",
    "Predicate",
    "PredicateRegistry",
    "Constant",
    "Fact",
    "Free",
    "Pattern",
    "Reference",
    "Term",
    "const",
    "fact",
    "facts",
    "free",
    "ref",
    "sort_facts",
    "EMPTY_SNAPSHOT",
    "RegisterSnapshot",
    "Branch",
    "Diagram",
    "Leaf",
    "Node",
    "DiagramValidator",
    "construct",
    "well_formed",
    "DiagramBuilder",
    "DEFAULT_MAX_ROUNDS",
    "DiagramExecutor",
    "Evaluation",
    "evaluate",
    "propagate",
    "snapshot_sets",
    "Example",
    "ProblemStatement",
    "blank_diagram",
    "collect_values",
    "ExampleEvaluator",
    "ScoreCard",
    "fact_agreement",
    "BindConstant",
    "CollapsePassThrough",
    "DuplicateNode",
    "Graft",
    "MergeNodes",
    "MutationSpec",
    "RedirectEdge",
    "ReplaceConstant",
    "ReplacePredicate",
    "ReplaceTerm",
    "RetargetRegister",
    "RewriteFreeRegister",
    "SpliceEdge",
    "UnbindConstant",
    "DiagramMutator",
    "apply",
    "Analysis",
    "ArmCombiner",
    "DiagramAnalyzer",
    "candidate_mutations",
    "same_pattern",
    "MutationWeights",
    "default_weights",
    "EvolutionConfig",
    "FAST_CONFIG",
    "STANDARD_CONFIG",
    "THOROUGH_CONFIG",
    "format_diagram",
    "parse_diagram",
    "DiagramEvolver",
    "Individual",
    "DiagramFeatureExtractor",
    "DiagramFitnessModel",
    "DiagramSupervisedGuide",
    "example_copy_rule_search",
    "example_next_board",
]
