"""Error kinds raised by the store, storage, mail and composer layers.

Every error carries a short ``user_message`` that is safe to show in a toast;
provider detail stays in the log.
"""


class WealthWiseError(Exception):
    kind = 'error'
    status_code = 500
    default_message = 'Something went wrong. Please try again.'

    def __init__(self, message=None, *, user_message=None):
        super().__init__(message or self.default_message)
        self.user_message = user_message or self.default_message

    def to_dict(self):
        return {'error': self.user_message, 'kind': self.kind}


class ValidationError(WealthWiseError):
    kind = 'validation'
    status_code = 400
    default_message = 'Please fill all required fields.'

    def __init__(self, message=None, *, fields=None, user_message=None):
        # Validation detail is written for the person filling the form.
        super().__init__(message, user_message=user_message or message)
        self.fields = list(fields or [])

    def to_dict(self):
        payload = super().to_dict()
        if self.fields:
            payload['fields'] = self.fields
        return payload


class StoreError(WealthWiseError):
    kind = 'store'
    status_code = 503
    default_message = 'The content store is unavailable. Please try again.'

    def __init__(self, message=None, *, transient=False, user_message=None):
        super().__init__(message, user_message=user_message)
        self.transient = transient


class NotFoundError(StoreError):
    kind = 'not_found'
    status_code = 404
    default_message = 'Record not found.'


class StorageError(WealthWiseError):
    kind = 'storage'
    status_code = 400
    default_message = 'Upload failed.'

    def __init__(self, message=None, *, reason='io', user_message=None):
        super().__init__(message, user_message=user_message)
        self.reason = reason

    def to_dict(self):
        payload = super().to_dict()
        payload['reason'] = self.reason
        return payload


class MailError(WealthWiseError):
    kind = 'mail'
    status_code = 502
    default_message = 'We could not send the email. Please try again later.'


class ComposerError(WealthWiseError):
    kind = 'composer'
    status_code = 400
    default_message = 'That block operation is not allowed.'
