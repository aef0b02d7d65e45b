class MemthickException(Exception):

    def __init__(self, *args):
        if args:
            self.message = args[0]
        else:
            self.message = None

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Unspecified error in the memthick module.'


class UserInputError(MemthickException):

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Incorrect input provided by the user.'


class InvalidGridError(UserInputError):

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Invalid grid dimensions or bin size.'


class StructureError(MemthickException):

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Invalid or incomplete system structure.'


class TrajectoryError(MemthickException):

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Malformed trajectory frame.'


class ProcessError(MemthickException):

    def __str__(self):
        if self.message:
            return self.message
        else:
            return 'Failed to finish a part of the analysis.'
