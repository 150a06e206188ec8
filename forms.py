from flask_wtf import FlaskForm
from wtforms import StringField, IntegerField, BooleanField, SelectField
from wtforms.validators import DataRequired, Email, Length, Optional

from tier_config import PLAN_CATALOG

# JSON bodies arrive as real booleans; WTForms only treats strings as false by default
JSON_FALSE_VALUES = (False, 'false', 'False', '', '0', 0)

PLAN_CHOICES = [(name, definition['display_name']) for name, definition in PLAN_CATALOG.items()]


class OrganizationSetupForm(FlaskForm):
    name = StringField('Organization Name', validators=[DataRequired(), Length(min=2, max=200)])
    plan_name = SelectField('Plan', choices=PLAN_CHOICES)


class InviteUserForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email()])
    profile_id = IntegerField('Profile', validators=[Optional()])


class AssignProfileForm(FlaskForm):
    profile_id = IntegerField('Profile', validators=[
        DataRequired(message='Please choose a profile')
    ])


class PlanChangeForm(FlaskForm):
    plan_name = SelectField('Plan', choices=PLAN_CHOICES, validators=[DataRequired()])


class ObjectPermissionForm(FlaskForm):
    can_create = BooleanField('Create', false_values=JSON_FALSE_VALUES)
    can_read = BooleanField('Read', false_values=JSON_FALSE_VALUES)
    can_edit = BooleanField('Edit', false_values=JSON_FALSE_VALUES)
    can_delete = BooleanField('Delete', false_values=JSON_FALSE_VALUES)
    can_view_all = BooleanField('View All', false_values=JSON_FALSE_VALUES)


class SecurityCheckForm(FlaskForm):
    object_type = StringField('Object Type', validators=[DataRequired()])
    action = StringField('Action', validators=[DataRequired()])
    object_id = IntegerField('Object ID', validators=[Optional()])


class PropertyForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(), Length(max=200)])
    address = StringField('Address', validators=[Optional(), Length(max=300)])


class TaskForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=200)])
    description = StringField('Description', validators=[Optional()])
    assigned_to_id = IntegerField('Assigned To', validators=[Optional()])
