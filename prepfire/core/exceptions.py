class ProblemNotFound(Exception):
    def __init__(self, problem_id: str):
        self.problem_id = problem_id
        super().__init__("Problem not found")


class SubmissionValidationError(ValueError):
    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
