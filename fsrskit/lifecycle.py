from __future__ import annotations

from dataclasses import dataclass

from fsrskit.core import CardState, Rating


@dataclass(frozen=True, slots=True)
class Transition:
    state: CardState
    lapsed: bool = False


def next_card_state(state: CardState, rating: Rating | int) -> Transition:
    """
    Scheduling lifecycle of a card, independent of its memory state.

    Hard/Good/Easy always lead to Review. Again sends a new card to Learning,
    keeps a learning card in Learning, and moves Review/Relearning cards to
    Relearning as a lapse.
    """
    rating = Rating.parse(rating)
    if not isinstance(state, CardState):
        state = CardState(state)
    if rating.is_success:
        return Transition(CardState.REVIEW)
    if state is CardState.NEW or state is CardState.LEARNING:
        return Transition(CardState.LEARNING)
    if state is CardState.REVIEW or state is CardState.RELEARNING:
        return Transition(CardState.RELEARNING, lapsed=True)
    raise ValueError(f"Unhandled card state {state!r}")


__all__ = ["Transition", "next_card_state"]
