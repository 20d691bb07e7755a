"""Post-selection gates: projectors that keep one outcome of a wire.

They are not unitary.  The discarded part of the state is dropped, so the
final state's squared norm is the chance that every post-selection in the
circuit succeeds (EvaluationResult.survival_rate).
"""
from __future__ import annotations

import numpy as np

from texq_engine.gates.gate import GateBuilder, GateDefinition


def _projector(symbol: str, title: str, blurb: str, matrix) -> GateDefinition:
    return (GateBuilder()
            .set_serialized_id_and_symbol(symbol)
            .set_title(title)
            .set_blurb(blurb)
            .set_drawer_id("post_selection")
            .set_known_matrix(np.array(matrix, dtype=np.complex128))
            .gate)


class PostSelection:
    PostSelectOff = _projector("|0⟩⟨0|", "Postselect Off",
                               "Keeps OFF states, discards ON states.",
                               [[1, 0], [0, 0]])

    PostSelectOn = _projector("|1⟩⟨1|", "Postselect On",
                              "Keeps ON states, discards OFF states.",
                              [[0, 0], [0, 1]])

    PostSelectPlus = _projector("|+⟩⟨+|", "Postselect X-Off",
                                "Keeps OFF-along-X states, discards ON-along-X states.",
                                [[0.5, 0.5], [0.5, 0.5]])

    PostSelectMinus = _projector("|-⟩⟨-|", "Postselect X-On",
                                 "Keeps ON-along-X states, discards OFF-along-X states.",
                                 [[0.5, -0.5], [-0.5, 0.5]])


ALL = (PostSelection.PostSelectOff, PostSelection.PostSelectOn,
       PostSelection.PostSelectPlus, PostSelection.PostSelectMinus)
