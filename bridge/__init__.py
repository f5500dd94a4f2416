"""Runner bridge - relay JSON requests to a runner script over stdin/stdout."""
