"""Notification Lambda functions: vendor email over SES, SMS alerts over SNS."""
