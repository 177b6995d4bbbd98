#! /usr/bin/env python

"""
Sparse vectors indexed by hashable feature keys.
The same class is used for feature vectors (phi) and for the model parameters (theta).
"""
from collections import defaultdict


class SparseWeightVector:

    __slots__ = ['x']

    def __init__(self,items=None):
        """
        @param items: an optional dict or iterable of (key,value) couples
        """
        self.x = defaultdict(float)
        if items:
            for key,val in dict(items).items():
                if val != 0.0:
                    self.x[key] = float(val)

    @staticmethod
    def code_phi(xvec_keys,ylabel):
        """
        Codes a list of x symbols conjoined with a y label as a feature vector.
        @param xvec_keys: a list of hashable x symbols
        @param ylabel: a hashable y label
        @return a SparseWeightVector
        """
        phi = SparseWeightVector()
        for xkey in xvec_keys:
            phi.x[(xkey,ylabel)] += 1.0
        return phi

    def dot_keys(self,xvec_keys,ylabel):
        """
        Dot product with the implicit vector coded by code_phi(xvec_keys,ylabel)
        without allocating it.
        """
        return sum(self.x.get((xkey,ylabel),0.0) for xkey in xvec_keys)

    def dot(self,other):
        """
        @param other: a SparseWeightVector
        @return the dot product as a float
        """
        if len(other.x) > len(self.x):
            self,other = other,self
        return sum(val * self.x.get(key,0.0) for key,val in other.x.items())

    def add_times_into(self,weight,target):
        """
        Adds weight * self into target (in place). The whole update is
        computed first and then written into target in a single batch.
        @param weight: a float
        @param target: a SparseWeightVector
        @return target
        """
        if weight == 0.0:
            return target
        batch = dict((key,target.x.get(key,0.0) + weight * val) for key,val in self.x.items())
        target.x.update(batch)
        return target

    def drop_zeros(self):
        for key in [key for key,val in self.x.items() if val == 0.0]:
            del self.x[key]
        return self

    def copy(self):
        cpy = SparseWeightVector()
        cpy.x.update(self.x)
        return cpy

    def get(self,key,default=0.0):
        return self.x.get(key,default)

    def keys(self):
        return self.x.keys()

    def items(self):
        return self.x.items()

    def __getitem__(self,key):
        return self.x.get(key,0.0)

    def __setitem__(self,key,value):
        self.x[key] = float(value)

    def __contains__(self,key):
        return key in self.x

    def __iter__(self):
        return iter(self.x.items())

    def __len__(self):
        return len(self.x)

    def __iadd__(self,other):
        other.add_times_into(1.0,self)
        return self

    def __isub__(self,other):
        other.add_times_into(-1.0,self)
        return self

    def __imul__(self,scalar):
        for key in self.x:
            self.x[key] *= scalar
        return self

    def __add__(self,other):
        res = self.copy()
        res += other
        return res

    def __eq__(self,other):
        if not isinstance(other,SparseWeightVector):
            return NotImplemented
        keys = set(self.x.keys()) | set(other.x.keys())
        return all(self.x.get(key,0.0) == other.x.get(key,0.0) for key in keys)

    __hash__ = None

    def __str__(self):
        return '{%s}'%(', '.join(['%s=%.4f'%(key,val) for key,val in sorted(self.x.items(),key=lambda kv:str(kv[0]))]))

    __repr__ = __str__
