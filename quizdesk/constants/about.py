"""Static metadata describing QuizDesk."""

APP_NAME = "QuizDesk"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizDesk runs timed quizzes drawn from a curated catalog of books, topics and "
    "questions. Students take shuffled quizzes through a small JSON API and review "
    "graded results afterwards."
)
