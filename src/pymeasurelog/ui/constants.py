"""Constants for the console front-end."""

COMMAND_TIMEOUT_S = 10

HELP_TEXT = """
Commands:
  l                      list measurements
  a VALUE [UNIT] [NOTE]  add a manual measurement
  i VALUE UNIT           submit a reading as the instrument would
  d ID                   delete a measurement
  n ID [NOTE]            set or clear the note of a measurement
  s SESSION|*            show one session (and capture into it) or all
  e [PATH]               export the shown measurements to CSV
  c                      clear the error indicator
  q                      quit"""
