from .answers import QuestionType
from .base import QuestionGrader
from .objective import BooleanGrader, FreeTextGrader, ShortTextGrader, SingleChoiceGrader

_GRADERS = {
    QuestionType.SINGLE_CHOICE: SingleChoiceGrader(),
    QuestionType.BOOLEAN: BooleanGrader(),
    QuestionType.SHORT_TEXT: ShortTextGrader(),
    QuestionType.FREE_TEXT: FreeTextGrader(),
}


def get_grader(question_type) -> QuestionGrader:
    return _GRADERS[QuestionType(question_type)]
