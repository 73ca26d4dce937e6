import argparse
import logging
import random
import sys
from dataclasses import dataclass, replace
from itertools import takewhile
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# ===================== Tunables ===================== #
LAYERS_PER_BOTTLE = 4       # every bottle holds exactly 4 units
RANDOM_SEED = None          # set to an int to replay the same deals, e.g. 42

# Difficulty ranges offered to the player (min, max)
TUBE_RANGE = (2, 20)
MAX_ROWS = 2                # bottles are laid out over at most two rows

# ===================== Colors ===================== #
EMPTY = None                # sentinel for an empty slot, never a palette index

PALETTE = [
    (255, 0, 0),      # red
    (0, 255, 0),      # green
    (0, 0, 255),      # blue
    (255, 255, 0),    # yellow
    (0, 255, 255),    # cyan
    (255, 175, 175),  # pink
    (63, 90, 38),     # dark green
    (134, 57, 57),    # brown
]

# one letter per palette entry, used by the text board
COLOR_CODES = "RGBYCPDN"

Layers = Tuple[Optional[int], ...]


class InvalidParameters(ValueError):
    """Raised when a difficulty setting cannot produce a puzzle."""


# ===================== Difficulty ===================== #
@dataclass(frozen=True)
class Difficulty:
    tube_count: int = 10
    empty_count: int = 4          # bottles left empty in the solved layout
    empty_at_end_count: int = 2   # of those, how many start empty at the end of the row
    colour_count: int = 4         # upper bound on distinct colors dealt

    @property
    def filled_count(self) -> int:
        return self.tube_count - self.empty_count

    def validate(self) -> None:
        if self.tube_count < 1:
            raise InvalidParameters(f"tube_count must be positive, got {self.tube_count}")
        if self.empty_count < 1:
            raise InvalidParameters(f"empty_count must be positive, got {self.empty_count}")
        if self.empty_at_end_count < 0:
            raise InvalidParameters(f"empty_at_end_count must not be negative, got {self.empty_at_end_count}")
        if self.colour_count < 1:
            raise InvalidParameters(f"colour_count must be positive, got {self.colour_count}")
        if self.empty_count > self.tube_count:
            raise InvalidParameters(
                f"empty_count ({self.empty_count}) exceeds tube_count ({self.tube_count})"
            )
        if self.empty_at_end_count > self.empty_count:
            raise InvalidParameters(
                f"empty_at_end_count ({self.empty_at_end_count}) exceeds empty_count ({self.empty_count})"
            )
        if self.colour_count > len(PALETTE):
            raise InvalidParameters(
                f"colour_count ({self.colour_count}) exceeds palette size ({len(PALETTE)})"
            )

    def clamped(self) -> "Difficulty":
        """Pull every field into the range the difficulty picker allows.

        The ranges depend on each other: at most half the tubes may be empty,
        and the empties forced to the end cannot outnumber the empties.
        """
        lo, hi = TUBE_RANGE
        tubes = max(lo, min(hi, self.tube_count))
        empty = max(1, min(tubes // 2, self.empty_count))
        at_end = max(0, min(empty, self.empty_at_end_count))
        colours = max(1, min(len(PALETTE), self.colour_count))
        return replace(self, tube_count=tubes, empty_count=empty,
                       empty_at_end_count=at_end, colour_count=colours)


DEFAULT_DIFFICULTY = Difficulty()


# ===================== Bottle ===================== #
@dataclass
class Bottle:
    layers: List[Optional[int]]  # bottom to top, length 4; palette index or EMPTY
    selected: bool = False       # only used for highlighting

    @classmethod
    def empty(cls) -> "Bottle":
        return cls(layers=[EMPTY] * LAYERS_PER_BOTTLE)

    # ---------- reading ---------- #
    def free_space(self) -> int:
        return self.layers.count(EMPTY)

    def fill_level(self) -> int:
        return LAYERS_PER_BOTTLE - self.free_space()

    def top_color(self) -> Optional[int]:
        """Color of the highest filled slot, EMPTY for an empty bottle."""
        filled = [c for c in self.layers if c is not EMPTY]
        return filled[-1] if filled else EMPTY

    def is_empty(self) -> bool:
        return self.top_color() is EMPTY

    def is_full(self) -> bool:
        return EMPTY not in self.layers

    def top_block_size(self) -> int:
        """How many units of the top color sit together at the top.

        This is what a pour carries away; 0 for an empty bottle.
        """
        top = self.top_color()
        if top is EMPTY:
            return 0
        filled = [c for c in self.layers if c is not EMPTY]
        return len(list(takewhile(lambda c: c == top, reversed(filled))))

    def is_uniform(self) -> bool:
        # an empty bottle counts: the solved layout keeps some bottles empty
        return len(set(self.layers)) == 1

    # ---------- writing ---------- #
    def push_color(self, color: int, count: int) -> None:
        room = self.free_space()
        if count > room:
            raise ValueError(f"cannot add {count} units, only {room} free")
        start = self.fill_level()
        self.layers[start:start + count] = [color] * count

    def remove(self, count: int) -> None:
        """Clear up to ``count`` filled slots, from the top down."""
        removed = 0
        for i in range(LAYERS_PER_BOTTLE - 1, -1, -1):
            if removed == count:
                break
            if self.layers[i] is not EMPTY:
                self.layers[i] = EMPTY
                removed += 1

    def snapshot(self) -> Layers:
        return tuple(self.layers)

    def restore(self, layers: Sequence[Optional[int]]) -> None:
        if len(layers) != LAYERS_PER_BOTTLE:
            raise ValueError(f"expected {LAYERS_PER_BOTTLE} layers, got {len(layers)}")
        self.layers = list(layers)


# ===================== Transfer ===================== #
@dataclass(frozen=True)
class Transfer:
    """One pour, recorded so it can be played back in reverse."""
    source: int
    destination: int
    color: int
    amount: int

    def apply(self, bottles: Sequence[Bottle]) -> None:
        bottles[self.source].remove(self.amount)
        bottles[self.destination].push_color(self.color, self.amount)

    def invert(self, bottles: Sequence[Bottle]) -> None:
        bottles[self.destination].remove(self.amount)
        bottles[self.source].push_color(self.color, self.amount)


# ===================== Game ===================== #
class Game:
    def __init__(self, difficulty: Difficulty = DEFAULT_DIFFICULTY,
                 rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random(RANDOM_SEED)
        self.difficulty = difficulty
        self.bottles: List[Bottle] = []
        self.selected: Optional[int] = None   # index of the lifted bottle
        self.history: List[Transfer] = []     # undo stack
        self.initial_snapshot: Tuple[Layers, ...] = ()
        self.colors: List[int] = []           # palette indices picked for this deal
        self.fit_per_row = 0
        self.message = ""
        self.won = False                      # set by the winning pour, freezes the board

    # ----------- generation ----------- #
    def generate(self, difficulty: Optional[Difficulty] = None) -> None:
        """Deal a new puzzle.

        ``difficulty`` replaces the stored settings; ``None`` deals again with
        the current ones. Bad settings raise :class:`InvalidParameters` before
        anything on the board changes.
        """
        params = difficulty if difficulty is not None else self.difficulty
        try:
            params.validate()
        except InvalidParameters as e:
            logger.warning(f"Rejected difficulty {params}: {e}")
            raise
        rng = self.rng

        self.difficulty = params
        self.history = []
        self.selected = None
        self.won = False
        self.fit_per_row = -(-params.tube_count // MAX_ROWS)
        self.bottles = [Bottle.empty() for _ in range(params.tube_count)]

        # pick the colors by shuffling the palette
        order = list(range(len(PALETTE)))
        rng.shuffle(order)
        self.colors = order[:params.colour_count]

        # every bottle to be filled brings one group of 4 units of a random color
        units_per_color = [0] * params.colour_count
        for _ in range(params.filled_count):
            units_per_color[rng.randrange(params.colour_count)] += LAYERS_PER_BOTTLE
        remaining = sum(units_per_color)

        # the trailing empty_at_end_count bottles stay empty
        open_slots = params.tube_count - params.empty_at_end_count
        targets = rng.sample(range(open_slots), params.filled_count)

        while remaining > 0:
            color_id = rng.choice([i for i, n in enumerate(units_per_color) if n > 0])
            bottle_id = rng.choice([t for t in targets if not self.bottles[t].is_full()])
            self.bottles[bottle_id].push_color(self.colors[color_id], 1)
            units_per_color[color_id] -= 1
            remaining -= 1

        self.initial_snapshot = tuple(b.snapshot() for b in self.bottles)
        self.message = (f"Total {params.tube_count} | Mixed {params.filled_count} "
                        f"| Empty {params.empty_count}")
        logger.info(f"Generated puzzle: {self.message}, {params.colour_count} colours max")

    def new_puzzle(self):
        """Deal a fresh random puzzle with the same difficulty."""
        self.generate()

    def rows(self) -> List[List[int]]:
        """Bottle indices grouped into display rows of ``fit_per_row``."""
        if not self.fit_per_row:
            return []
        n = len(self.bottles)
        return [list(range(i, min(i + self.fit_per_row, n)))
                for i in range(0, n, self.fit_per_row)]

    # ----------- selection ----------- #
    def clear_selection(self):
        if self.selected is not None:
            self.bottles[self.selected].selected = False
        self.selected = None

    def click_bottle(self, idx: int) -> None:
        """Select a bottle, or pour the selected one into it."""
        if self.won or not 0 <= idx < len(self.bottles):
            return
        if self.selected is None:
            # an empty bottle cannot start a pour
            if not self.bottles[idx].is_empty():
                self.selected = idx
                self.bottles[idx].selected = True
        elif self.selected != idx:
            self.pour(self.selected, idx)

    # ----------- rules ----------- #
    def _can_pour(self, a: Bottle, b: Bottle):
        if a.is_empty() or b.is_full():
            return False
        return b.is_empty() or b.top_color() == a.top_color()

    def pour(self, src: int, dst: int) -> bool:
        """Pour as much of ``src``'s top color into ``dst`` as fits.

        Returns False, with nothing moved, when the pour is not allowed or
        the puzzle is already won. The selection is dropped either way.
        """
        self.clear_selection()
        if self.won:
            return False
        n = len(self.bottles)
        if src == dst or not (0 <= src < n and 0 <= dst < n):
            self.message = "Pick two different bottles."
            return False
        a, b = self.bottles[src], self.bottles[dst]
        if not self._can_pour(a, b):
            self.message = "Can't pour there."
            logger.debug(f"Rejected pour {src} -> {dst}")
            return False

        transfer = Transfer(src, dst, a.top_color(), min(a.top_block_size(), b.free_space()))
        self.history.append(transfer)
        transfer.apply(self.bottles)
        logger.debug(f"Poured {transfer}")
        self.message = ""
        if self.is_won():
            self.won = True
            self.message = "You win!"
            logger.info(f"Puzzle solved in {len(self.history)} pours")
        return True

    def undo(self):
        if self.won:
            return
        if not self.history:
            self.message = "Nothing to undo."
            return
        self.clear_selection()
        transfer = self.history.pop()
        transfer.invert(self.bottles)
        logger.debug(f"Undid {transfer}")
        self.message = "Undone."

    def is_undo_available(self) -> bool:
        return not self.won and bool(self.history)

    def is_won(self) -> bool:
        return all(b.is_uniform() for b in self.bottles)

    def reset_to_initial(self):
        """Back to the deal as generated; undo history is dropped."""
        self.history = []
        self.won = False
        self.clear_selection()
        for b, layers in zip(self.bottles, self.initial_snapshot):
            b.restore(layers)
        self.message = ""
        logger.debug("Puzzle reset to its initial layout")

    def snapshot(self) -> Tuple[Layers, ...]:
        return tuple(b.snapshot() for b in self.bottles)


# ===================== Text board ===================== #
def render_text(game: Game) -> str:
    """Draw the board as text, top slot first, one block per display row."""
    lines = []
    for row in game.rows():
        for level in range(LAYERS_PER_BOTTLE - 1, -1, -1):
            cells = []
            for idx in row:
                c = game.bottles[idx].layers[level]
                cells.append(f"|{'.' if c is EMPTY else COLOR_CODES[c]}|")
            lines.append(" ".join(cells))
        # a star marks the lifted bottle
        labels = [f"{'*' if game.bottles[idx].selected else ''}{idx + 1}" for idx in row]
        labels = [f"{label:^3}" for label in labels]
        lines.append(" ".join(labels))
    if game.message:
        lines.append(game.message)
    return "\n".join(lines)


HELP = "Commands: <from> <to>, u(ndo), r(eset), n(ew), d(ifficulty), q(uit)"
DIFFICULTY_USAGE = "Usage: d <tubes> <empty> <empty at end> <colours>"
WON_HELP = "Solved! n(ew), d(ifficulty) or q(uit)"


def pick_difficulty(tubes, empty, empty_at_end, colours) -> Difficulty:
    """Build a difficulty the picker allows, warning when values had to move."""
    asked = Difficulty(tubes, empty, empty_at_end, colours)
    chosen = asked.clamped()
    if chosen != asked:
        logger.warning(f"Difficulty {asked} is out of range, using {chosen}")
    return chosen


def handle_command(game: Game, line: str) -> bool:
    """Run one console command; False means quit.

    Once the puzzle is solved only a new deal, a difficulty change or quit
    are accepted.
    """
    words = line.split()
    if not words:
        return True
    cmd, args = words[0].lower(), words[1:]
    if cmd == "q":
        return False
    if cmd == "n":
        game.new_puzzle()
    elif cmd == "d":
        if len(args) != 4 or not all(a.isdigit() for a in args):
            game.message = DIFFICULTY_USAGE
        else:
            game.generate(pick_difficulty(*(int(a) for a in args)))
    elif game.won:
        game.message = WON_HELP
    elif cmd == "u":
        game.undo()
    elif cmd == "r":
        game.reset_to_initial()
    elif len(words) == 2 and all(w.isdigit() for w in words):
        game.pour(int(words[0]) - 1, int(words[1]) - 1)
    else:
        game.message = HELP
    return True


# ===================== Entry point ===================== #
def setup_logging(level: int = logging.INFO) -> None:
    log = logging.getLogger(__name__)
    log.setLevel(level)
    if log.hasHandlers():
        log.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    ))
    log.addHandler(handler)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    d = DEFAULT_DIFFICULTY
    parser = argparse.ArgumentParser(description="Sort the liquid so every bottle holds one color.")
    parser.add_argument("--tubes", type=int, default=d.tube_count)
    parser.add_argument("--empty", type=int, default=d.empty_count)
    parser.add_argument("--empty-at-end", type=int, default=d.empty_at_end_count)
    parser.add_argument("--colours", type=int, default=d.colour_count)
    parser.add_argument("--seed", type=int, default=RANDOM_SEED)
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level))
    difficulty = pick_difficulty(args.tubes, args.empty, args.empty_at_end, args.colours)
    game = Game(difficulty, rng=random.Random(args.seed))
    game.generate()

    print(render_text(game))
    for line in sys.stdin:
        if not handle_command(game, line):
            break
        print(render_text(game))
    return 0


if __name__ == "__main__":
    sys.exit(main())
