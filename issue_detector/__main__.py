from issue_detector.cli import cli

cli(prog_name="issue-detector")
