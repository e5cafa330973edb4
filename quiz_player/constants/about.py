"""Static metadata describing QuizPlayer."""

APP_NAME = "QuizPlayer"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizPlayer runs timed quiz attempts against a quiz backend. "
    "Quizzes can come from study material, a free topic, or a community, "
    "and every score shown to the learner is the one the server graded."
)
