# mcare/backend/tools/email_templates.py
"""
HTML email bodies, rendered with Jinja2.

All messages share the same card layout; the per-message part is the
`content` block.
"""

from jinja2 import Environment, DictLoader

_LAYOUT = """
<div style="font-family: Arial, sans-serif; background: #f9faf7; padding: 20px;">
  <div style="max-width: 600px; margin: auto; background: #ffffff; border-radius: 12px; box-shadow: 0 4px 12px rgba(0,0,0,0.1); overflow: hidden;">
    <div style="background: linear-gradient(135deg, #2e7d32, #c0ca33); padding: 20px; text-align: center;">
      <h1 style="margin: 0; font-size: 24px; color: #ffffff; font-weight: bold;">{% block title %}MCare{% endblock %}</h1>
      <p style="margin: 5px 0 0; color: #fdfde7; font-size: 14px;">{% block subtitle %}{% endblock %}</p>
    </div>
    <div style="padding: 20px; color: #333;">
      <p style="font-size: 16px;">Hello <b style="color: #2e7d32;">{{ recipient_name }}</b>,</p>
      {% block content %}{% endblock %}
    </div>
    <div style="background: #2e7d32; padding: 15px; text-align: center; font-size: 13px; color: #ffffff;">
      <p style="margin: 0;">&copy; {{ year }} MCare. All Rights Reserved.</p>
    </div>
  </div>
</div>
"""

_DUTY_TABLE = """
<table style="width: 100%; border-collapse: collapse; margin-top: 15px;">
  {% for label, value in [("Group", group_name), ("Date", duty_date), ("Time", duty.time_range),
                          ("Place", duty.place), ("Clinical Instructor", duty.clinical_instructor),
                          ("Area", duty.area)] %}
  <tr>
    <td style="padding: 8px; border: 1px solid #ddd; font-weight: bold; background:#f9fbe7;">{{ label }}</td>
    <td style="padding: 8px; border: 1px solid #ddd;">{{ value }}</td>
  </tr>
  {% endfor %}
</table>
"""

_TEMPLATES = {
    "layout.html": _LAYOUT,
    "duty_table.html": _DUTY_TABLE,
    "duty_assigned.html": """
{% extends "layout.html" %}
{% block subtitle %}New Duty Assigned{% endblock %}
{% block content %}
<p style="font-size: 16px;">You have been assigned a new duty with the following details:</p>
{% include "duty_table.html" %}
<p style="margin-top: 20px; font-size: 15px; color: #555;">Please be on time. This is an automated notification.</p>
{% endblock %}
""",
    "duty_updated.html": """
{% extends "layout.html" %}
{% block subtitle %}Your Duty Has Been Updated{% endblock %}
{% block content %}
<p style="font-size: 16px;">Your previous duty has been updated with the following details:</p>
{% include "duty_table.html" %}
<p style="margin-top: 20px; font-size: 15px; color: #555;">Please be on time. This is an automated notification.</p>
{% endblock %}
""",
    "duty_reminder.html": """
{% extends "layout.html" %}
{% block subtitle %}Your Duty Reminder{% endblock %}
{% block content %}
<p style="font-size: 16px;">This is a reminder that you have a duty scheduled <b>tomorrow</b>:</p>
{% include "duty_table.html" %}
<p style="margin-top: 20px; font-size: 15px; color: #555;">Please prepare accordingly. Thank you for your commitment!</p>
{% endblock %}
""",
    "welcome.html": """
{% extends "layout.html" %}
{% block title %}Welcome to MCare{% endblock %}
{% block subtitle %}Your Student Duty &amp; Attendance Companion{% endblock %}
{% block content %}
<p style="font-size: 16px;">Welcome to <b>MCare</b>! We're excited to have you on board.</p>
<p style="margin-top: 15px; font-size: 15px; color: #555;">With MCare, you can:</p>
<ul style="margin: 10px 0 20px 20px; color: #2e7d32; font-size: 15px;">
  <li>View your duty schedule assigned by your professors</li>
  <li>Get notified about upcoming duties</li>
  <li>Easily record attendance using your unique QR code</li>
</ul>
{% endblock %}
""",
    "password_changed.html": """
{% extends "layout.html" %}
{% block subtitle %}Password Change Alert{% endblock %}
{% block content %}
<p style="font-size: 16px;">Your account password was successfully updated on <b>{{ changed_at }}</b>.</p>
<p style="margin-top: 15px; font-size: 15px; color: #555;">
  If <b>you made this change</b>, no further action is required.<br>
  If <b>you did not make this change</b>, please contact the administration immediately to secure your account.
</p>
{% endblock %}
""",
}


environment = Environment(loader=DictLoader(_TEMPLATES), autoescape=True)


def render(template_name: str, **context) -> str:
    return environment.get_template(template_name).render(**context)
