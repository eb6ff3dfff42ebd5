"""Kiln AST node definitions.

Immutable, frozen dataclass nodes representing Kiln template syntax.
Every node carries a ``Span`` into its template; passes that annotate the
tree (binder, normalizer, validator) return new nodes.

Node Categories:
    Template Structure: Template, Extends, Block, Include, Import
    Control Flow: If, Elif, Else, For, Break, Continue, Match, When
    Output: Output, Data, Raw, Comment, FilterBlock
    Variables: Let
    Functions: Macro, MacroParam, Call, SuperCall
    Expressions: Const, Name, Tuple, List, Getattr, Getitem, Filter,
        BinOp, UnaryOp, Compare, BoolOp, Concat, CondExpr, BlockText
"""

from kiln.nodes.base import NO_TRIM, PRESERVED, Node, Trim
from kiln.nodes.control_flow import Break, Continue, Elif, Else, For, If, Match, When
from kiln.nodes.expressions import (
    AnyExpr,
    BinOp,
    BlockText,
    BoolOp,
    Compare,
    Concat,
    CondExpr,
    Const,
    Expr,
    Filter,
    Getattr,
    Getitem,
    List,
    Name,
    Tuple,
    UnaryOp,
)
from kiln.nodes.functions import BoundArgument, Call, Macro, MacroParam, SuperCall
from kiln.nodes.output import Comment, Data, FilterBlock, Output, Raw
from kiln.nodes.structure import Block, Extends, Import, Include, Template
from kiln.nodes.variables import Let

__all__ = [
    "NO_TRIM",
    "PRESERVED",
    "AnyExpr",
    "BinOp",
    "Block",
    "BlockText",
    "BoolOp",
    "Break",
    "BoundArgument",
    "Call",
    "Comment",
    "Compare",
    "Concat",
    "CondExpr",
    "Const",
    "Continue",
    "Data",
    "Elif",
    "Else",
    "Expr",
    "Extends",
    "Filter",
    "FilterBlock",
    "For",
    "Getattr",
    "Getitem",
    "If",
    "Import",
    "Include",
    "Let",
    "List",
    "Macro",
    "Match",
    "MacroParam",
    "Name",
    "Node",
    "Output",
    "Raw",
    "SuperCall",
    "Template",
    "Trim",
    "Tuple",
    "UnaryOp",
    "When",
]
