"""
File input and output: the .mqo tokenizer and reader, and the OBJ export.
"""
