class DomainError(Exception):
    pass


class NotFoundError(DomainError):
    pass


class CourseNotFound(NotFoundError):
    def __init__(self, course_id: str):
        super().__init__("course not found")
        self.course_id = course_id


class ModuleNotFound(NotFoundError):
    def __init__(self, module_id: str):
        super().__init__("module not found")
        self.module_id = module_id


class LessonNotFound(NotFoundError):
    def __init__(self, lesson_id: str):
        super().__init__("lesson not found")
        self.lesson_id = lesson_id


class CourseLocked(DomainError):
    def __init__(self, course_id: str):
        super().__init__("course is locked")
        self.course_id = course_id


class InvalidTransition(DomainError):
    def __init__(self, current: str, target: str):
        super().__init__(f"cannot move course from {current} to {target}")
        self.current = current
        self.target = target
