from django.core.exceptions import ValidationError


class InvalidPeriod(ValidationError):
    def __init__(self, start_date, end_date):
        super().__init__(
            f'Report start date {start_date} is after end date {end_date}.',
            code='invalid_period',
        )
        self.start_date = start_date
        self.end_date = end_date


class UnknownAccount(ValidationError):
    def __init__(self, account_id):
        super().__init__(f'Account {account_id} does not exist.', code='unknown_account')
        self.account_id = account_id


class UnknownPerson(ValidationError):
    def __init__(self, person_type, person_id):
        super().__init__(f'No {person_type} found with id {person_id}.', code='unknown_person')
        self.person_type = person_type
        self.person_id = person_id


class PartialWriteFailure(ValidationError):
    """A bulk write was aborted and rolled back; nothing was persisted."""

    def __init__(self, message, failed_person_id=None):
        super().__init__(message, code='partial_write_failure')
        self.failed_person_id = failed_person_id
