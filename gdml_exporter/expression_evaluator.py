import math
import asteval

def create_configured_asteval():
    """
    Factory function to create and configure a new asteval.Interpreter instance.
    Measurements carry their own unit tag, so no unit symbols are defined here.
    """
    aeval = asteval.Interpreter(symtable={}, minimal=True)

    # Add safe math functions
    for func_name in ['sin', 'cos', 'tan', 'asin', 'acos', 'atan', 'atan2',
                      'sqrt', 'exp', 'log', 'log10', 'pow']:
        aeval.symtable[func_name] = getattr(math, func_name)
    aeval.symtable['abs'] = abs

    aeval.symtable.update({'pi': math.pi, 'PI': math.pi})

    return aeval

class ExpressionEvaluator:
    """A safe expression evaluator for numeric fields of dict-described volume trees."""

    def __init__(self):
        self.interpreter = create_configured_asteval()

    def add_symbol(self, name, value):
        self.interpreter.symtable[name] = value

    def evaluate(self, expression):
        """
        Evaluates an expression string.

        Returns:
            tuple: (True, value) on success, (False, error_message) on failure.
        """
        try:
            result = self.interpreter.eval(expression, show_errors=False, raise_errors=True)
        except Exception as e:
            # asteval re-raises whatever the expression raised; report it as text
            return False, str(e)
        if result is None:
            return False, f"expression '{expression}' produced no value"
        return True, result
