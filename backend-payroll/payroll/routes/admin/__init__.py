"""
Admin routes - Main blueprint
Step-up verification and the manager operations it guards
"""

from flask import Blueprint, jsonify

from payroll.services.errors import StepUpError

admin_bp = Blueprint('admin', __name__)


@admin_bp.errorhandler(StepUpError)
def handle_step_up_error(error):
    return jsonify(error.to_dict()), error.status_code


# Sub-modules are imported once the blueprint exists
from payroll.routes.admin import step_up
from payroll.routes.admin import managers
