"""QuizDesk: quiz attempt engine and student API."""

__version__ = "0.1.0"
