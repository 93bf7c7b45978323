"""
Error taxonomy for the entitlement and progression engine.
Every error here is an expected outcome the caller branches on.
"""


class EngineError(Exception):
    """Base class; carries an HTTP status and a stable error code"""
    status_code = 400
    code = 'engine_error'
    default_message = 'Request could not be completed'

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        data = {
            'success': False,
            'error': self.code,
            'message': self.message
        }
        if self.details:
            data['details'] = self.details
        return data


class Forbidden(EngineError):
    status_code = 403
    code = 'forbidden'
    default_message = 'You do not have access to this unit'


class AlreadyCompleted(EngineError):
    status_code = 409
    code = 'already_completed'
    default_message = 'This unit has already been completed'


class AlreadyOwned(EngineError):
    status_code = 409
    code = 'already_owned'
    default_message = 'You already own this course'


class DuplicateActiveOrder(EngineError):
    """Raised when a live pending order already exists; holds that order"""
    status_code = 409
    code = 'duplicate_active_order'
    default_message = 'A pending order already exists for this course'

    def __init__(self, order, message=None):
        super().__init__(message, order_no=order.order_no)
        self.order = order


class NotFound(EngineError):
    status_code = 404
    code = 'not_found'
    default_message = 'Resource not found'


class AlreadyTerminal(EngineError):
    status_code = 409
    code = 'already_terminal'
    default_message = 'Order is already paid or cancelled'


class Expired(EngineError):
    status_code = 410
    code = 'expired'
    default_message = 'Order payment deadline has passed'


class TransientStorageError(EngineError):
    """Storage conflict or outage; retry the whole operation"""
    status_code = 503
    code = 'transient_storage_error'
    default_message = 'Temporary storage failure, please retry'
